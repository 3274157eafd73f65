"""Template environment used to build output file names."""

from __future__ import annotations

import dataclasses
import re
from datetime import datetime
from typing import Any, Callable

import jinja2

from bililive.configs import Config
from bililive.text import (
    StringFilterChain,
    parse_unicode,
    remove_symbol_other_char,
    replace_illegal_char,
    unescape_html_entity,
)

_GO_LAYOUT = re.compile(r"January|Monday|2006|-0700|Jan|Mon|MST|01|02|03|04|05|06|15|PM|%")
_GO_TO_STRFTIME = {
    "January": "%B",
    "Monday": "%A",
    "2006": "%Y",
    "-0700": "%z",
    "Jan": "%b",
    "Mon": "%a",
    "MST": "%Z",
    "01": "%m",
    "02": "%d",
    "03": "%I",
    "04": "%M",
    "05": "%S",
    "06": "%y",
    "15": "%H",
    "PM": "%p",
    "%": "%%",
}


def _go_date(value: datetime, layout: str) -> str:
    """Format ``value`` with a reference-time layout such as ``2006-01-02 15-04-05``."""
    return value.strftime(_GO_LAYOUT.sub(lambda m: _GO_TO_STRFTIME[m.group(0)], layout))


def filename_filter(config: Config) -> StringFilterChain:
    """Filter that makes text safe to use in a file name."""
    filters = [replace_illegal_char, unescape_html_entity]
    if config.feature.remove_symbol_other_character:
        filters.append(remove_symbol_other_char)
    return StringFilterChain(*filters)


def get_function_list(config: Config) -> dict[str, Callable[[str], str]]:
    return {
        "decodeUnicode": parse_unicode,
        "replaceIllegalChar": replace_illegal_char,
        "unescapeHTMLEntity": unescape_html_entity,
        "filenameFilter": filename_filter(config).do,
    }


def create_environment(config: Config) -> jinja2.Environment:
    """An environment with the text filters, ``date`` and ``now``."""
    env = jinja2.Environment(undefined=jinja2.StrictUndefined, autoescape=False, keep_trailing_newline=True)
    functions: dict[str, Any] = dict(get_function_list(config))
    functions["date"] = _go_date
    env.filters.update(functions)
    env.globals.update(functions)
    env.globals["now"] = datetime.now
    return env


def render_template(config: Config, source: str, info: Any) -> str:
    """Render ``source`` with the fields of ``info`` as variables."""
    env = create_environment(config)
    context = {item.name: getattr(info, item.name) for item in dataclasses.fields(info)}
    context["info"] = info
    context["platform_cn_name"] = getattr(info.live, "platform_cn_name", "")
    return env.from_string(source).render(context)