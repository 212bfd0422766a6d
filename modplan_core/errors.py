from __future__ import annotations


class SheetNotFoundError(LookupError):
    """A collaborator sheet the operation depends on is missing from the workbook."""

    def __init__(self, sheet_name: str) -> None:
        super().__init__(f"Required sheet not found: {sheet_name!r}")
        self.sheet_name = sheet_name
