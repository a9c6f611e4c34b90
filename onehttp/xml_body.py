"""Structural XML serialization for request and response bodies.

Values are first reduced to plain JSON-like data (dicts, lists, scalars), then
mapped onto elements: dict keys become child element names, lists become
repeated sibling elements, None becomes an element marked xsi:nil="true", and
scalars become text. Parsing is the inverse, with every leaf coming back as a
string (an empty element is ""); the typed validation step is responsible for
coercing "42" into 42. Leaf text is kept exactly, surrounding whitespace included.

XML has no way to tell a one-item list from a scalar, so parse_xml accepts a
set of tag names that must always come back as lists.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any

XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"
XSI_NIL = f"{{{XSI_NAMESPACE}}}nil"

ET.register_namespace("xsi", XSI_NAMESPACE)


# ---------------------------------------------------------------------------
# Plain data → XML bytes  (request bodies)
# ---------------------------------------------------------------------------


def build_xml(root_tag: str, value: Any) -> bytes:
    """Serialize *value* under a root element named *root_tag*.

    Returns:
        UTF-8 encoded XML bytes with an XML declaration.

    Raises:
        ValueError: If *root_tag* or any nested key is not a usable element name.
    """
    root_element = _to_element(root_tag, value)
    return ET.tostring(root_element, encoding="utf-8", xml_declaration=True)


def _check_tag(tag: str) -> str:
    if not tag or not (tag[0].isalpha() or tag[0] == "_") or any(c.isspace() for c in tag):
        raise ValueError(f"Cannot use {tag!r} as an XML element name")
    return tag


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _to_element(tag: str, value: Any) -> ET.Element:
    element = ET.Element(_check_tag(tag))

    if value is None:
        element.set(XSI_NIL, "true")
    elif isinstance(value, dict):
        for key, child_value in value.items():
            key = str(key)
            if key == "#text":
                element.text = _format_scalar(child_value)
            elif key.startswith("@"):
                if child_value is not None:
                    element.set(_check_tag(key[1:]), _format_scalar(child_value))
            elif isinstance(child_value, list):
                for item in child_value:
                    element.append(_to_element(key, item))
            else:
                element.append(_to_element(key, child_value))
    elif isinstance(value, list):
        # Only reachable for a list at the root or a list nested in a list
        for item in value:
            element.append(_to_element("item", item))
    else:
        element.text = _format_scalar(value)

    return element


# ---------------------------------------------------------------------------
# XML bytes → plain data  (response bodies)
# ---------------------------------------------------------------------------


def parse_xml(
    xml_bytes: bytes | str,
    force_list: set[str] | None = None,
) -> tuple[str, Any]:
    """Parse an XML document into ``(root_tag, content)``.

    Namespace URIs are stripped from tag names, so
    ``{http://example.com/ns}Name`` becomes ``Name``.

    Raises:
        ET.ParseError: If the document is not well-formed.
    """
    root = ET.fromstring(xml_bytes)
    return _strip_ns(root.tag), _from_element(root, force_list or set())


def _strip_ns(tag: str) -> str:
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def _from_element(element: ET.Element, force_list: set[str]) -> dict[str, Any] | str | None:
    """Convert one element to a dict, a string, or None.

    xsi:nil="true" gives None. Attributes become ``@name`` keys (namespaced
    attributes and xmlns declarations skipped). Children are grouped by tag;
    repeated tags or tags in *force_list* become lists. Text next to
    attributes or children is kept under ``#text``, except whitespace-only
    text between child elements.
    """
    if element.get(XSI_NIL) in ("true", "1"):
        return None

    result: dict[str, Any] = {}

    for attr_name, attr_value in element.attrib.items():
        if attr_name.startswith("xmlns") or attr_name.startswith("{"):
            continue
        result[f"@{attr_name}"] = attr_value

    children_by_tag: dict[str, list[Any]] = {}
    for child in element:
        children_by_tag.setdefault(_strip_ns(child.tag), []).append(
            _from_element(child, force_list)
        )

    for tag, values in children_by_tag.items():
        if tag in force_list or len(values) > 1:
            result[tag] = values
        else:
            result[tag] = values[0]

    text = element.text or ""
    if not result:
        return text
    if text and not (children_by_tag and text.isspace()):
        result["#text"] = text
    return result
