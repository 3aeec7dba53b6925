"""
Identifier handling for generated ScrapScript.

Sprite, variable and procedure names coming from users (or from foreign
projects) may contain characters that are not valid identifiers. ``escape``
encodes each offending character as ``$<char code>$`` and wraps reserved
words in dollars; ``unescape`` reverses it.
"""

import re

RESERVED_WORDS = [
    "break", "case", "catch", "class", "const", "continue", "debugger",
    "default", "delete", "do", "else", "export", "extends", "finally", "for",
    "function", "if", "import", "in", "instanceof", "new", "return", "super",
    "switch", "this", "throw", "try", "typeof", "var", "void", "while", "with",
    "yield", "enum", "implements", "interface", "let", "package", "private",
    "protected", "public", "static", "await", "null", "true", "false",
    "arguments", "Scrap", "Color", "$", "self", "window", "Math", "Date",
    "Array", "String", "Number", "Promise", "Infinity", "NaN", "undefined",
]

_BAD = re.compile(r"(^[^a-zA-Z_])|([^a-zA-Z_0-9])")
_ESCAPED = re.compile(r"\$(\d+)\$")
IDENTIFIER = re.compile(r"^[a-zA-Z_$][\w$]*$")


def escape(name: str) -> str:
    result = _BAD.sub(lambda m: f"${ord(m.group(0))}$", name)
    if result in RESERVED_WORDS:
        return f"${result}$"
    return result


def unescape(name: str) -> str:
    result = _ESCAPED.sub(lambda m: chr(int(m.group(1))), name)
    if len(result) > 1 and result[0] == "$" and result[-1] == "$":
        return result[1:-1]
    return result


def is_identifier(name: str) -> bool:
    """True when ``name`` can be used verbatim as a ScrapScript identifier."""
    return bool(IDENTIFIER.match(name)) and name not in RESERVED_WORDS


def unique_name(base: str, taken) -> str:
    """Return ``base`` or ``base2``, ``base3``... whichever is not in ``taken``."""
    if base not in taken:
        return base
    i = 2
    while f"{base}{i}" in taken:
        i += 1
    return f"{base}{i}"
