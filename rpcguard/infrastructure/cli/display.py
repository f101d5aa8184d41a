import logging
from typing import Any, Optional, Sequence

from rich.box import ROUNDED
from rich.console import Console
from rich.table import Table

from rpcguard.domain.interfaces.user_interface import UserInterface

logger = logging.getLogger(__name__)


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        """Initializes the rich Console."""
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    @console.setter
    def console(self, value: Console) -> None:
        self._console = value

    def display_output(self, output: str, **kwargs: Any) -> None:
        style = kwargs.get("style")
        self.console.print(output, style=style)

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {error_message}")

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        self.console.print(f"[bold yellow]Warning:[/bold yellow] {warning_message}")

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        self.console.print(f"[blue]Info:[/blue] {info_message}")

    def display_table(
        self,
        title: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        **kwargs: Any
    ) -> None:
        """Renders rows as a rich Table.

        Args:
            title: Table title.
            columns: Column headers; numeric-looking columns are right aligned
                when ``numeric_columns`` lists their indexes.
            rows: Row values, converted with ``str``.
            **kwargs: ``numeric_columns`` (iterable of column indexes) and
                ``caption`` are recognised.
        """
        numeric = set(kwargs.get("numeric_columns", ()))
        table = Table(title=title, box=ROUNDED, caption=kwargs.get("caption"))
        for index, column in enumerate(columns):
            table.add_column(column, justify="right" if index in numeric else "left")
        for row in rows:
            table.add_row(*(str(cell) for cell in row))
        logger.debug(f"Displaying table '{title}' with {len(rows)} rows")
        self.console.print(table)
