"""Approval gate for tool calls that need user confirmation."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from codeloop.config.schema import AutoApproveConfig
from codeloop.tools.models import ApprovalType, ToolCall

logger = logging.getLogger(__name__)


class ApprovalPendingError(RuntimeError):
    """Raised when a second approval is requested while one is outstanding."""


@dataclass
class ApprovalRequest:
    """The single outstanding request: which call, and how it gets resolved."""

    tool_call: ToolCall
    approval_type: ApprovalType
    future: "asyncio.Future[bool]"


class ApprovalGate:
    """Single-slot approval queue.

    ``request`` suspends the caller on a future until ``approve``, ``reject``
    or ``cancel`` resolves it. At most one request exists at a time and each
    is resolved exactly once; resolving with nothing pending is a no-op.
    """

    def __init__(self, auto_approve: Optional[AutoApproveConfig] = None):
        self.auto_approve = auto_approve or AutoApproveConfig()
        self._pending: Optional[ApprovalRequest] = None

    @property
    def pending(self) -> Optional[ApprovalRequest]:
        return self._pending

    @property
    def has_pending(self) -> bool:
        return self._pending is not None and not self._pending.future.done()

    def needs_approval(self, approval_type: ApprovalType) -> bool:
        """Whether a tool with this requirement has to wait for the user."""
        return not self.auto_approve.allows(approval_type)

    async def request(
        self,
        tool_call: ToolCall,
        approval_type: ApprovalType,
        notify: Optional[Callable[[ApprovalRequest], None]] = None,
    ) -> bool:
        """Wait for the user to decide on a tool call.

        Args:
            tool_call: Call awaiting a decision
            approval_type: Its approval category
            notify: Called once the request is pending, before suspending;
                it may resolve the request synchronously

        Returns:
            True if approved, False if rejected or cancelled

        Raises:
            ApprovalPendingError: If another request is outstanding
        """
        if self.has_pending:
            raise ApprovalPendingError(
                f"Approval already pending for tool call {self._pending.tool_call.id}"
            )

        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        request = ApprovalRequest(tool_call=tool_call, approval_type=approval_type, future=future)
        self._pending = request
        logger.debug(f"Awaiting approval for {tool_call.name} ({tool_call.id})")

        try:
            if notify is not None:
                notify(request)
            return await future
        finally:
            self._pending = None

    def approve(self) -> bool:
        """Approve the outstanding request.

        Returns:
            True if a request was resolved
        """
        return self._resolve(True)

    def reject(self) -> bool:
        """Reject the outstanding request.

        Returns:
            True if a request was resolved
        """
        return self._resolve(False)

    def cancel(self) -> bool:
        """Resolve any outstanding request as rejected (used on abort)."""
        resolved = self._resolve(False)
        if resolved:
            logger.info("Pending approval cancelled")
        return resolved

    def _resolve(self, approved: bool) -> bool:
        request = self._pending
        if request is None or request.future.done():
            return False
        request.future.set_result(approved)
        return True
