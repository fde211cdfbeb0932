import string
import typing as tp
from dataclasses import dataclass, field, fields

from ._exceptions import ParseError, ValidationError

__all__ = (
    "CacheControl",
    "parse_cache_control",
    "parse_entity_tags",
    "weak_match",
)

# RFC 9110, Section 5.6
OWS = " \t"
TOKEN_CHARS = frozenset("!#$%&'*+-.^_`|~" + string.digits + string.ascii_letters)
QUOTED_CHARS = frozenset(
    "\t !"
    + "".join(chr(i) for i in range(0x23, 0x5C))
    + "".join(chr(i) for i in range(0x5D, 0x7F))
    + "".join(chr(i) for i in range(0x80, 0x100))  # obs-text
)


def _directive(kind: str, default: tp.Any) -> tp.Any:
    return field(default=default, metadata={"kind": kind})


@dataclass(repr=False)
class CacheControl:
    """
    The caching directives of a response.

    Directives in `seconds` form hold an int, flags hold a bool and
    `no_cache`/`private` hold either True or the lower-cased field
    names they apply to.
    """

    immutable: bool = _directive("flag", False)  # RFC 8246
    max_age: tp.Optional[int] = _directive("seconds", None)  # RFC 9111, Section 5.2.2.1
    must_revalidate: bool = _directive("flag", False)  # RFC 9111, Section 5.2.2.2
    no_cache: tp.Union[bool, tp.List[str]] = _directive("field_names", False)  # RFC 9111, Section 5.2.2.4
    no_store: bool = _directive("flag", False)  # RFC 9111, Section 5.2.2.5
    no_transform: bool = _directive("flag", False)  # RFC 9111, Section 5.2.2.6
    private: tp.Union[bool, tp.List[str]] = _directive("field_names", False)  # RFC 9111, Section 5.2.2.7
    proxy_revalidate: bool = _directive("flag", False)  # RFC 9111, Section 5.2.2.8
    public: bool = _directive("flag", False)  # RFC 9111, Section 5.2.2.9
    s_maxage: tp.Optional[int] = _directive("seconds", None)  # RFC 9111, Section 5.2.2.10
    stale_if_error: tp.Optional[int] = _directive("seconds", None)  # RFC 5861, Section 4
    stale_while_revalidate: tp.Optional[int] = _directive("seconds", None)  # RFC 5861, Section 3

    def __repr__(self) -> str:
        shown = []
        for directive in fields(self):
            value = getattr(self, directive.name)
            if directive.metadata["kind"] == "seconds":
                if value is not None:
                    shown.append(f"{directive.name}={value}")
            elif value:
                shown.append(directive.name)
        return f"<{type(self).__name__} {', '.join(shown)}>"


def split_outside_quotes(text: str, separator: str = ",") -> tp.List[str]:
    parts = []
    current = ""
    in_quotes = False

    for char in text:
        if char == '"':
            in_quotes = not in_quotes
        if char == separator and not in_quotes:
            parts.append(current)
            current = ""
            continue
        current += char
    parts.append(current)
    return parts


def parse_cache_control(cache_control_values: tp.List[str]) -> CacheControl:
    """
    Parses the values of one or more `Cache-Control` headers.

    Raises `ParseError` when a directive breaks the grammar and
    `ValidationError` when a known directive carries a bad argument.
    Unknown directives are accepted and ignored.
    """
    directives: tp.Dict[str, tp.Optional[str]] = {}

    for header_value in cache_control_values:
        for directive in split_outside_quotes(header_value):
            name, value = _parse_directive(directive)
            directives[name.lower().replace("-", "_")] = value

    return CacheControl(**_validate(directives))


def _parse_directive(directive: str) -> tp.Tuple[str, tp.Optional[str]]:
    if not directive:
        raise ParseError("The directive should not be left blank.")

    directive = directive.strip(OWS)
    if not directive:
        raise ParseError("The directive should not contain only whitespaces.")

    name, separator, value = directive.partition("=")
    for char in name:
        if char not in TOKEN_CHARS:
            raise ParseError(f"The character {char!r} is not permitted in the directive name.")

    if not separator:
        return name, None

    value = value.strip(OWS)
    if not value:
        raise ParseError("The directive value cannot be left blank.")

    if value.startswith('"'):
        if len(value) < 2 or not value.endswith('"'):
            raise ParseError("Invalid quotes around the value.")
        allowed, content, form = QUOTED_CHARS, value[1:-1], "quoted"
    else:
        allowed, content, form = TOKEN_CHARS, value, "unquoted"

    for char in content:
        if char not in allowed:
            raise ParseError(f"The character {char!r} is not permitted for the {form} values.")
    return name, value


def _validate(directives: tp.Dict[str, tp.Optional[str]]) -> tp.Dict[str, tp.Any]:
    kinds = {directive.name: directive.metadata["kind"] for directive in fields(CacheControl)}
    validated: tp.Dict[str, tp.Any] = {}

    for name, value in directives.items():
        kind = kinds.get(name)
        if kind == "seconds":
            validated[name] = _seconds(name, value)
        elif kind == "flag":
            if value is not None:
                raise ValidationError(f"The {name!r} directive takes no value, but got {value!r}.")
            validated[name] = True
        elif kind == "field_names":
            validated[name] = True if value is None else _field_names(name, value)

    return validated


def _seconds(name: str, value: tp.Optional[str]) -> int:
    if value is None:
        raise ValidationError(f"The {name!r} directive requires a number of seconds.")
    if value.startswith('"'):
        raise ValidationError(f"The {name!r} directive expects a number of seconds, not a quoted string.")
    if not value.isdigit():
        raise ValidationError(f"The {name!r} directive expects a number of seconds, but got {value!r}.")
    return int(value)


def _field_names(name: str, value: str) -> tp.List[str]:
    names = []
    for field_name in value.strip('"').split(","):
        field_name = field_name.strip(OWS)
        if not field_name:
            raise ValidationError(f"The {name!r} directive lists an empty field name.")
        names.append(field_name.lower())
    return names


def parse_entity_tags(value: str) -> tp.List[str]:
    """
    Splits an `If-None-Match` style list into its entity tags.

    `*` is returned as a single-element list.
    """
    value = value.strip(OWS)
    if value == "*":
        return ["*"]

    return [tag.strip(OWS) for tag in split_outside_quotes(value) if tag.strip(OWS)]


def weak_match(first: str, second: str) -> bool:
    # RFC 9110, Section 8.8.3.2: weak comparison ignores the W/ prefix
    def opaque(tag: str) -> str:
        return tag[2:] if tag.startswith("W/") else tag

    return opaque(first) == opaque(second)
