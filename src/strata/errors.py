from typing import List, Optional


class SpecError(ValueError):
    """A desired-state record or request is malformed."""


class CommandError(Exception):
    """A host command exited non-zero. The raw output is kept for diagnosis."""

    def __init__(self, cmd: List[str], output: str = "", returncode: Optional[int] = None):
        self.cmd = list(cmd)
        self.output = output
        self.returncode = returncode
        super().__init__(f"{' '.join(self.cmd)}: exit {returncode}: {output.strip()}")


class CommandTimeout(CommandError):
    def __init__(self, cmd: List[str], timeout: float, output: str = ""):
        self.timeout = timeout
        super().__init__(cmd, output=output, returncode=None)
        self.args = (f"command timed out after {timeout}s: {' '.join(self.cmd)}",)


class AgentError(Exception):
    """The storage executor rejected a request or could not be reached."""

    def __init__(self, message: str, output: str = "", status_code: Optional[int] = None):
        self.output = output
        self.status_code = status_code
        super().__init__(message)


class AgentTimeout(AgentError):
    """The executor call exceeded its deadline; the outcome is unknown."""


class DependencyNotFound(LookupError):
    pass


class ConflictError(Exception):
    pass


class NotFoundError(LookupError):
    pass


class InvalidPhaseTransition(ValueError):
    pass
