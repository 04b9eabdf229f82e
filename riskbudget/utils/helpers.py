"""
Helper utility functions
"""

from typing import Any, Dict, List

from rich.table import Table
from tabulate import tabulate


def format_currency(value: float, decimals: int = 2) -> str:
    """Format a number as currency"""
    if value is None:
        return "N/A"
    return f"${value:,.{decimals}f}"


def format_percentage(value: float, decimals: int = 2) -> str:
    """Format a number as percentage"""
    if value is None:
        return "N/A"
    return f"{value:.{decimals}f}%"


def format_number(value: float, decimals: int = 2) -> str:
    """Format a number with specified decimals"""
    if value is None:
        return "N/A"
    return f"{value:,.{decimals}f}"


def format_table(data: List[Dict[str, Any]], headers: List[str] = None,
                tablefmt: str = "simple") -> str:
    """
    Format data as a table

    Args:
        data: List of dictionaries with table data
        headers: List of header names (uses dict keys if None)
        tablefmt: Table format (simple, grid, fancy_grid, etc.)

    Returns:
        Formatted table string
    """
    if not data:
        return "No data to display"

    if headers is None and isinstance(data[0], dict):
        headers = "keys"

    return tabulate(data, headers=headers, tablefmt=tablefmt)


def create_rich_table(title: str, columns: List[str], rows: List[List[Any]]) -> Table:
    """
    Create a Rich table for console output

    Args:
        title: Table title
        columns: Column headers
        rows: List of row data

    Returns:
        Rich Table object
    """
    table = Table(title=title, show_header=True, header_style="bold magenta")

    for col in columns:
        table.add_column(col)

    for row in rows:
        table.add_row(*[str(item) for item in row])

    return table
