"""Rich-based formatters for pdpconf output."""

from __future__ import annotations

from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from pdpconf.document import PathDocument
from pdpconf.models import ConfigValue

_MAX_VALUE_LEN = 60
_REDACTED_LABEL = "[redacted]"
_SECRET_MARKERS = ("password", "secret")

_SECTION_LABELS = {
    "dbms": "Database setup finished",
    "admin": "Admin user setup finished",
    "http": "HTTP endpoint setup finished",
    "rsocket": "RSocket endpoint setup finished",
    "api-auth": "API authentication valid",
}


def is_secret_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SECRET_MARKERS)


def _truncate(value: str) -> str:
    if len(value) <= _MAX_VALUE_LEN:
        return value
    return value[:_MAX_VALUE_LEN] + "…"


def _display_value(key: str, value: ConfigValue, include_secrets: bool) -> str:
    """Return the value to display, or the redacted placeholder for secrets."""
    if is_secret_key(key) and not include_secrets:
        return _REDACTED_LABEL
    if isinstance(value, list):
        return _truncate(", ".join(str(item) for item in value))
    if isinstance(value, bool):
        return "true" if value else "false"
    return _truncate(str(value))


def _leaf_label(key: str, value: ConfigValue, show_values: bool, include_secrets: bool) -> Text:
    if is_secret_key(key):
        name_style = "bold yellow"
    elif isinstance(value, list):
        name_style = "bold cyan"
    else:
        name_style = "bold green"

    label = Text()
    label.append(key, style=name_style)
    if show_values:
        display = _display_value(key, value, include_secrets)
        style = "dim red" if display == _REDACTED_LABEL else "italic"
        label.append(f"  {display}", style=style)
    return label


def _add_node(
    rich_tree: Tree, node: dict[str, ConfigValue], show_values: bool, include_secrets: bool
) -> None:
    """Recursively add *node*'s entries to *rich_tree* in document order."""
    for key, value in node.items():
        if isinstance(value, dict):
            branch = rich_tree.add(Text(str(key), style="bold blue"))
            _add_node(branch, value, show_values, include_secrets)
        else:
            rich_tree.add(_leaf_label(str(key), value, show_values, include_secrets))


def render_document(
    document: PathDocument, show_values: bool = True, include_secrets: bool = False
) -> Tree:
    """Render one configuration document as a Rich tree.

    Args:
        document: The document to render.
        show_values: When *False*, only keys are shown.
        include_secrets: When *True*, password-like values are shown as-is;
            when *False*, they are replaced with ``[redacted]``.

    Returns:
        A :class:`rich.tree.Tree` ready to be printed.
    """
    title = Text(str(document.source), style="bold white")
    if document.dirty:
        title.append("  (unsaved changes)", style="yellow")
    rich_root = Tree(title)
    if not document.data:
        rich_root.add(Text("(empty)", style="dim"))
    _add_node(rich_root, document.data, show_values, include_secrets)
    return rich_root


def render_leaves(
    leaves: list[tuple[str, ConfigValue]], show_values: bool = True, include_secrets: bool = False
) -> Table:
    """Render flat ``(path, value)`` pairs, e.g. the result of a path filter."""
    table = Table(show_lines=False)
    table.add_column("Path", style="cyan")
    if show_values:
        table.add_column("Value")
    for path, value in leaves:
        key = path.rsplit("/", 1)[-1]
        if show_values:
            table.add_row(path, _display_value(key, value, include_secrets))
        else:
            table.add_row(path)
    return table


def render_status(status: dict[str, bool], tls_disabled: list[str]) -> Table:
    """Render the per-section setup state.

    Args:
        status: Section name to "finished" flag, as from
            :meth:`~pdpconf.session.SetupSession.status`.
        tls_disabled: Endpoint names persisted without TLS.

    Returns:
        A :class:`rich.table.Table`.
    """
    table = Table(title="Setup status", show_lines=False)
    table.add_column("Section")
    table.add_column("State", width=8)
    table.add_column("Note", style="dim")

    for name, done in status.items():
        state = Text("done", style="bold green") if done else Text("missing", style="bold red")
        note = ""
        if name in tls_disabled and done:
            note = "TLS disabled, do not use in production"
        table.add_row(_SECTION_LABELS.get(name, name), state, note)
    return table


def render_problems(title: str, problems: list[str]) -> Text:
    text = Text(f"{title}\n", style="bold red")
    for problem in problems:
        text.append(f"  • {problem}\n", style="red")
    return text
