"""
Macro expansion of command arguments and user command actions.

Templates are mustache templates rendered with pystache. The context
describes the command being run and the item list it runs on:

    {{args}}      raw argument text        {{count}}     count, if given
    {{bang}}      "!" when given            {{current}}   item under the cursor
    {{#argv}}..{{/argv}}  each argument     {{selected}}  selected items
    {{env.NAME}}  environment variable
"""

import os
from typing import Any, Dict, Optional

import pystache

from exline.exline_datatypes import CommandInfo, ItemList


class MacroExpander:
    def __init__(self, environ=None):
        self.environ = os.environ if environ is None else environ
        # Output is command text, never HTML.
        self.renderer = pystache.Renderer(escape=lambda u: u, missing_tags='ignore')

    def context(self, info: Optional[CommandInfo], view: Optional[ItemList]) -> Dict[str, Any]:
        ctx: Dict[str, Any] = {"env": dict(self.environ)}
        if info is not None:
            ctx.update({
                "args": info.args,
                "argv": list(info.argv),
                "bang": "!" if info.bang else "",
                "qmark": "?" if info.qmark else "",
                "count": "" if info.count is None else str(info.count),
            })
        if view is not None:
            current = view.current
            ctx["current"] = "" if current is None else str(current)
            ctx["selected"] = " ".join(str(item) for item in view.selected_items())
        return ctx

    def expand(self, template: str, info: Optional[CommandInfo] = None,
               view: Optional[ItemList] = None) -> str:
        if "{{" not in template:
            return template
        return self.renderer.render(template, self.context(info, view))
