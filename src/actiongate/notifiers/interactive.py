"""Interactive terminal approval."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm

from ..errors import ApprovalError
from ..policies import PolicyResult
from ..redaction import redact_parameters, safe_repr
from ..types import Action
from .base import Approver


class InteractiveApprover(Approver):
    """Interactive terminal-based approver using rich."""

    def __init__(self, prompt: str = "Approve this action?", console: Console | None = None) -> None:
        self.prompt = prompt
        self.console = console or Console()

    def approve(self, action: Action, result: PolicyResult, request_id: str) -> bool:
        """Prompt user for approval in terminal."""
        try:
            self.console.print("\n[bold yellow]Approval required[/bold yellow]")
            self.console.print(f"[bold]Agent:[/bold] {escape(action.agent_id)}")
            self.console.print(f"[bold]Action:[/bold] {escape(action.action_name)}")
            self.console.print(
                f"[bold]Parameters:[/bold] {escape(safe_repr(redact_parameters(action.parameters), 500))}"
            )
            if action.reason:
                self.console.print(f"[bold]Agent reason:[/bold] {escape(action.reason)}")
            self.console.print(f"[bold]Policy:[/bold] {escape(result.reason)}")
            self.console.print(f"[bold]Request ID:[/bold] {escape(request_id)}")
            self.console.print()
            return Confirm.ask(escape(self.prompt), default=False, console=self.console)
        except (KeyboardInterrupt, EOFError) as e:
            raise ApprovalError("Approval prompt interrupted") from e
        except Exception as e:
            raise ApprovalError(f"Approval prompt failed: {e}") from e
