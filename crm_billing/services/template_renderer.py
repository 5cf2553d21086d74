# crm_billing/services/template_renderer.py

import re
from typing import Mapping

TOKEN_PATTERN = re.compile(r"\{\{\s*([A-ZÑ_]+)\s*\}\}")


def render_template(template: str, tokens: Mapping[str, str]) -> str:
    """
    Substitute {{TOKEN}} placeholders in a single pass.

    Values are never re-scanned, so a value that itself contains "{{...}}" is
    inserted literally. Unknown tokens are left as they are.
    """
    def replace(match):
        name = match.group(1)
        if name in tokens:
            return str(tokens[name])
        return match.group(0)

    return TOKEN_PATTERN.sub(replace, template)
