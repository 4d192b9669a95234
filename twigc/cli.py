from __future__ import annotations

import argparse
import json
import logging
import re
import sys
from pathlib import Path
from typing import Any, List, Optional

from .codegen.runtime import to_data
from .config import find_config, load_options
from .config.model import CompilerOptions
from .errors import TwigcUserError
from .report_schema import CompileReport, RenderReport
from .template.loader import FilesystemLoader
from .template.processor import Template
from .template.store import TemplateStore
from .version import tool_version


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="twigc",
        description="Twig template compiler for UI component trees",
        add_help=True,
    )
    p.add_argument("-v", "--version", action="version", version=f"%(prog)s {tool_version()}")
    p.add_argument("--config", metavar="FILE", help="path to twigc.yaml (default: searched upwards)")
    p.add_argument("--verbose", action="store_true", help="debug logging to stderr")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp_compile = sub.add_parser("compile", help="generate Python modules from templates")
    sp_compile.add_argument("path", help="template file or directory of templates")
    sp_compile.add_argument(
        "--out",
        metavar="DIR",
        help="write modules into DIR and print a JSON report (default: print module source)",
    )

    sp_render = sub.add_parser("render", help="render a template and print the element tree as JSON")
    sp_render.add_argument("path", help="template file")
    sp_render.add_argument(
        "--context",
        metavar="JSON|@FILE",
        help="render context: a JSON object, or @file to read it from a file",
    )
    sp_render.add_argument(
        "--root",
        metavar="DIR",
        help="directory with templates available to include/extends (default: the template's directory)",
    )

    return p


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _options(ns: argparse.Namespace, start: Path) -> CompilerOptions:
    if ns.config:
        path = Path(ns.config)
        if not path.is_file():
            raise ValueError(f"Config file not found: {path}")
        return load_options(path)
    return load_options(find_config(start))


def _parse_context(context_arg: Optional[str]) -> Any:
    """
    Parse the --context argument.

    Supports a JSON string or @path/to/file.json.
    """
    if not context_arg:
        return {}
    text = context_arg
    if context_arg.startswith("@"):
        file_path = Path(context_arg[1:])
        if not file_path.is_file():
            raise ValueError(f"Context file not found: {file_path}")
        text = file_path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON context: {e.msg} (line {e.lineno}, column {e.colno})") from e
    if not isinstance(data, dict):
        raise ValueError("Render context must be a JSON object")
    return data


def module_filename(template_id: str) -> str:
    """Module path for a template id: 'partials/item-row.twig' -> 'partials/item_row.py'."""
    parent, _, name = template_id.rpartition("/")
    stem = name.split(".", 1)[0] or "template"
    stem = re.sub(r"\W", "_", stem)
    if stem[0].isdigit():
        stem = f"t_{stem}"
    return f"{parent}/{stem}.py" if parent else f"{stem}.py"


def _compile(ns: argparse.Namespace) -> int:
    target = Path(ns.path)
    options = _options(ns, target)
    store = TemplateStore(options)

    if target.is_dir():
        templates = FilesystemLoader(target, options).load_into(store)
    elif target.is_file():
        templates = [FilesystemLoader(target.parent, options).load_file(target, store)]
    else:
        raise ValueError(f"Template path not found: {target}")

    if not ns.out:
        for template in templates:
            sys.stdout.write(template.to_module())
        return 0

    out_dir = Path(ns.out)
    reports: List[dict] = []
    for template in templates:
        source = template.generate()
        if source is None:
            continue
        out_path = out_dir / module_filename(template.template_id)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(source.to_module(), encoding="utf-8")
        report = CompileReport(
            template_id=template.template_id,
            requires=source.requires,
            includes=source.includes,
            styles=source.styles,
            scripts=source.scripts,
            blocks=list(source.blocks),
            extends=source.extends,
            warnings=template.last_result.warnings if template.last_result else [],
            output=out_path.as_posix(),
        )
        reports.append(report.model_dump(mode="json", by_alias=True))
    sys.stdout.write(json.dumps(reports, ensure_ascii=False, indent=2) + "\n")
    return 0


def _render(ns: argparse.Namespace) -> int:
    target = Path(ns.path)
    if not target.is_file():
        raise ValueError(f"Template file not found: {target}")
    options = _options(ns, target)
    context = _parse_context(ns.context)

    root = Path(ns.root) if ns.root else target.parent
    loader = FilesystemLoader(root, options)
    store = TemplateStore(options)
    loader.load_into(store)
    try:
        template_id = loader.template_id(target)
    except ValueError:
        template_id = target.name
    template = store.load(template_id) or loader.load_file(target, store)

    result = template.render(context)
    report = RenderReport(
        template_id=template_id,
        value=to_data(result.value) if result is not None else None,
        warnings=result.warnings if result is not None else [],
    )
    sys.stdout.write(json.dumps(report.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2) + "\n")
    return 0


def main(argv: list[str] | None = None) -> int:
    ns = _build_parser().parse_args(argv)
    _configure_logging(ns.verbose)

    try:
        if ns.cmd == "compile":
            return _compile(ns)
        if ns.cmd == "render":
            return _render(ns)
    except TwigcUserError as e:
        sys.stderr.write(str(e).rstrip() + "\n")
        return 2
    except ValueError as e:
        sys.stderr.write(str(e).rstrip() + "\n")
        return 2

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
