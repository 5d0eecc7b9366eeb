class AutomationStepFailure(Exception):
    """A storefront step could not be carried out (missing control, navigation error, timeout)."""

    def __init__(self, step: str, message: str) -> None:
        self.step = step
        self.message = message
        super().__init__(f"{step}: {message}")
