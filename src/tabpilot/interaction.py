"""
Page Interaction - Click, fill and evaluate in the page's own context.

Click and fill are addressed by CSS selector, usually one produced by the
node resolver. The resolver follows nodes into open shadow roots and
same-origin iframes, so the page-side lookup walks those as well.
Cross-origin frames are out of reach from the page context and are skipped.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from tabpilot.cdp.commands import EvaluateResult, RuntimeEvaluate
from tabpilot.cdp.dispatcher import CommandDispatcher
from tabpilot.cdp.session import DebuggerSession
from tabpilot.core.errors import ElementNotFoundError, ScriptError

logger = logging.getLogger("tabpilot")

DEEP_QUERY_JS = r"""
  function deepQuery(selector) {
    const queue = [document];
    const seen = new Set();
    while (queue.length) {
      const root = queue.shift();
      if (!root || seen.has(root)) continue;
      seen.add(root);
      const found = root.querySelector(selector);
      if (found) return found;
      for (const el of root.querySelectorAll('*')) {
        if (el.shadowRoot) queue.push(el.shadowRoot);
        if (el.tagName === 'IFRAME' || el.tagName === 'FRAME') {
          try {
            if (el.contentDocument) queue.push(el.contentDocument);
          } catch (e) {
            // cross-origin frame
          }
        }
      }
    }
    return null;
  }
"""

CLICK_ELEMENT_JS = "function clickElement(selector) {" + DEEP_QUERY_JS + r"""
  const el = deepQuery(selector);
  if (!el) return false;
  el.click();
  return true;
}"""

FILL_ELEMENT_JS = "function fillElement(selector, text) {" + DEEP_QUERY_JS + r"""
  const el = deepQuery(selector);
  if (!el) return false;
  const view = (el.ownerDocument && el.ownerDocument.defaultView) || window;
  if (typeof el.focus === 'function') el.focus();
  let proto = null;
  if (el instanceof view.HTMLInputElement) proto = view.HTMLInputElement.prototype;
  else if (el instanceof view.HTMLTextAreaElement) proto = view.HTMLTextAreaElement.prototype;
  else if (el instanceof view.HTMLSelectElement) proto = view.HTMLSelectElement.prototype;
  if (proto) {
    // Native setter so framework-managed inputs observe the change
    Object.getOwnPropertyDescriptor(proto, 'value').set.call(el, text);
  } else if (el.isContentEditable) {
    el.textContent = text;
  } else {
    el.value = text;
  }
  el.dispatchEvent(new Event('input', { bubbles: true }));
  el.dispatchEvent(new Event('change', { bubbles: true }));
  return true;
}"""


def call_expression(function_source: str, *args: Any) -> str:
    """Build an expression invoking ``function_source`` with JSON-encoded args."""
    return f"({function_source})(...{json.dumps(list(args))})"


def _describe_exception(details: Dict[str, Any]) -> str:
    exception = details.get("exception") or {}
    return exception.get("description") or details.get("text") or "script threw"


class PageInteractor:
    """Runs page-context operations on an attached session."""

    def __init__(self, dispatcher: CommandDispatcher):
        self.dispatcher = dispatcher

    async def click(self, session: DebuggerSession, selector: str) -> None:
        """
        Click the element matching ``selector``.

        Raises:
            ElementNotFoundError: nothing matches ``selector`` right now.
        """
        result = await self._run(
            session, "click", call_expression(CLICK_ELEMENT_JS, selector), return_by_value=True
        )
        if result.value is not True:
            raise self._not_found(session, "click", selector)
        logger.debug(f"Clicked {selector}", extra={"session_id": session.session_id})

    async def fill(self, session: DebuggerSession, selector: str, text: str) -> None:
        """
        Set the value of the form field matching ``selector``.

        Raises:
            ElementNotFoundError: nothing matches ``selector`` right now.
        """
        result = await self._run(
            session, "fill", call_expression(FILL_ELEMENT_JS, selector, text), return_by_value=True
        )
        if result.value is not True:
            raise self._not_found(session, "fill", selector)
        logger.debug(f"Filled {selector}", extra={"session_id": session.session_id})

    async def evaluate(self, session: DebuggerSession, script: str) -> None:
        """
        Run ``script`` in the page's main world with page privileges.

        Completes once the host reports the script ran; its value is not
        returned. A thrown exception surfaces as ``ScriptError``.
        """
        await self._run(session, "evaluate", script)

    async def _run(
        self,
        session: DebuggerSession,
        operation: str,
        expression: str,
        *,
        return_by_value: bool = False,
    ) -> EvaluateResult:
        session.ensure_attached(operation)
        result = await self.dispatcher.send(
            session,
            RuntimeEvaluate(expression=expression, return_by_value=return_by_value),
        )
        if result.threw:
            description = _describe_exception(result.exception_details)
            logger.debug(
                f"{operation} script threw: {description}",
                extra={"session_id": session.session_id, "method": operation}
            )
            raise ScriptError(
                f"Script raised in page: {description}",
                exception_details=result.exception_details,
                session_id=session.session_id,
                target_id=session.tab_id,
                method=operation,
            )
        return result

    @staticmethod
    def _not_found(session: DebuggerSession, operation: str, selector: Optional[str]) -> ElementNotFoundError:
        return ElementNotFoundError(
            f"No element matches {selector}",
            selector=selector,
            session_id=session.session_id,
            target_id=session.tab_id,
            method=operation,
        )
