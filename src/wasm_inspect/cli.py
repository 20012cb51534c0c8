"""Command-line interface for wasm-inspect.

Usage:
    wasm-inspect module.wasm               # One line per section
    wasm-inspect --names module.wasm       # Also list function names
    wasm-inspect --json module.wasm | jq . # Machine-readable summary
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import NoReturn

import click

from wasm_inspect import __version__
from wasm_inspect._logging import configure_logging
from wasm_inspect.errors import BinaryError
from wasm_inspect.module import SECTION_CODE, SECTION_CUSTOM, decode_module
from wasm_inspect.types import DecodedModule, FunctionBody, NAME_FUNCTION

# Exit codes
EXIT_SUCCESS = 0
EXIT_DECODE_ERROR = 1

# DecodedModule attribute holding each section's entries
SECTION_ENTRIES: dict[str, str] = {
    "type": "types",
    "import": "imports",
    "function": "functions",
    "table": "tables",
    "memory": "memories",
    "global": "globals",
    "export": "exports",
    "element": "elements",
    "code": "code",
    "data": "data",
    "tag": "tags",
}


def function_names(module: DecodedModule) -> dict[int, str]:
    """Collect the function names recorded in the name section."""
    names: dict[int, str] = {}
    for name in module.names:
        if isinstance(name, BinaryError) or name.kind != NAME_FUNCTION:
            continue
        for naming in name.value:
            if not isinstance(naming, BinaryError):
                names[naming.index] = naming.name
    return names


def summarize(module: DecodedModule) -> dict:
    """Build the summary printed by the command, as plain data."""
    sections = []
    for section in module.sections:
        entry = {
            "id": section.id,
            "name": section.name,
            "start": section.range.start,
            "end": section.range.end,
        }
        custom = module.custom_section_for(section) if section.id == SECTION_CUSTOM else None
        if custom is not None:
            entry["custom_name"] = custom.name
        attr = SECTION_ENTRIES.get(section.name)
        if attr is not None:
            entries = getattr(module, attr)
            entry["entries"] = len(entries)
            entry["errors"] = sum(isinstance(e, BinaryError) for e in entries)
        sections.append(entry)

    bodies = [body for body in module.code if isinstance(body, FunctionBody)]
    summary = {
        "sections": sections,
        "functions": len(bodies),
        "average_body_size": (
            sum(len(body.range) for body in bodies) / len(bodies) if bodies else 0
        ),
        "errors": [
            {"type": type(e).__name__, "message": e.message, "offset": e.offset}
            for e in module.errors + module.entry_errors()
        ],
    }
    return summary


def format_summary(summary: dict, names: dict[int, str] | None = None) -> str:
    """Format a summary as text, one line per section."""
    lines = []
    for section in summary["sections"]:
        line = (
            f"{section['id']:>3} {section['name']:<10} "
            f"0x{section['start']:08x}..0x{section['end']:08x}"
        )
        if "custom_name" in section:
            line += f' "{section["custom_name"]}"'
        if "entries" in section:
            line += f"  entries={section['entries']}"
            if section["errors"]:
                line += click.style(f" errors={section['errors']}", fg="red")
        lines.append(line)

    if any(s["id"] == SECTION_CODE for s in summary["sections"]):
        lines.append(
            f"functions: {summary['functions']}, "
            f"average body size: {summary['average_body_size']:.1f} bytes"
        )

    if names is not None:
        lines.append("function names:")
        lines.extend(f"  {index}: {name}" for index, name in sorted(names.items()))

    for error in summary["errors"]:
        lines.append(
            click.style(
                f"error: {error['type']}: {error['message']} (at offset {error['offset']})",
                fg="red",
            )
        )
    return "\n".join(lines)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--names", "show_names", is_flag=True, help="List function names from the name section")
@click.option("--no-operators", is_flag=True, help="Skip decoding function body instructions")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.option("-v", "--verbose", is_flag=True, help="Log decoder progress to stderr")
@click.option("-q", "--quiet", is_flag=True, help="Only log errors")
@click.version_option(__version__, "-V", "--version", prog_name="wasm-inspect")
def main(
    file: Path,
    show_names: bool,
    no_operators: bool,
    json_output: bool,
    verbose: bool,
    quiet: bool,
) -> NoReturn:
    """Decode a WebAssembly binary and summarize its sections.

    Exits with status 1 if the module header is invalid or any section,
    entry or function body failed to decode.
    """
    configure_logging(level="DEBUG" if verbose else None, quiet=quiet)

    try:
        module = decode_module(file, operators=not no_operators)
    except BinaryError as e:
        click.echo(click.style(f"Error: {e}", fg="red", bold=True), err=True)
        sys.exit(EXIT_DECODE_ERROR)

    summary = summarize(module)
    names = function_names(module) if show_names else None

    if json_output:
        if names is not None:
            summary["function_names"] = {str(k): v for k, v in sorted(names.items())}
        click.echo(json.dumps(summary, indent=2))
    else:
        click.echo(format_summary(summary, names))

    sys.exit(EXIT_DECODE_ERROR if summary["errors"] else EXIT_SUCCESS)


if __name__ == "__main__":
    main()
