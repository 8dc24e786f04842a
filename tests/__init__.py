"""
TabPilot Tests

Run all tests:
    pytest tests/ -v

Run specific test file:
    pytest tests/test_resolver.py -v

Run against a real Chrome (started with --remote-debugging-port=9222):
    TABPILOT_CHROME=1 pytest tests/ -v -m integration
"""
