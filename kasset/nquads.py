"""N-Quads parsing and output formatting.

Assertions travel as lists of N-Quads statements. Callers may ask for them
either as an N-Quads document or in a structured graph form (expanded
JSON-LD shape)::

    {"@graph": [
        {"@id": "_:c14n...", "@type": ["http://schema.org/Thing"],
         "http://schema.org/name": [{"@value": "A"}]}
    ]}
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from kasset.assertion import RDF_TYPE
from kasset.errors import ContentFormatError


class NQuadsFormatError(ContentFormatError):
    """A statement is not valid N-Quads."""
    pass


class OutputFormat(Enum):
    """Output formats for fetched assertions."""
    N_QUADS = "N-QUADS"
    JSON_LD = "JSON-LD"


_IRI = r"<[^<>\"\s]*>"
_BNODE = r"_:[A-Za-z0-9_.\-]+"
_LITERAL = r'"(?:[^"\\]|\\.)*"(?:\^\^<[^<>\"\s]*>|@[A-Za-z]+(?:-[A-Za-z0-9]+)*)?'
_QUAD_RE = re.compile(
    rf"^(?P<s>{_IRI}|{_BNODE})\s+(?P<p>{_IRI})\s+(?P<o>{_IRI}|{_BNODE}|{_LITERAL})"
    rf"(?:\s+(?P<g>{_IRI}|{_BNODE}))?\s*\.\s*$"
)
_LITERAL_RE = re.compile(r'^"(?P<v>(?:[^"\\]|\\.)*)"(?:\^\^<(?P<dt>[^>]*)>|@(?P<lang>[A-Za-z0-9\-]+))?$')
_UNESCAPES = {"\\\\": "\\", '\\"': '"', "\\n": "\n", "\\r": "\r", "\\t": "\t"}


@dataclass(frozen=True)
class Quad:
    subject: str
    predicate: str
    object: str
    graph: Optional[str] = None


def _strip_iri(term: str) -> str:
    return term[1:-1] if term.startswith("<") else term


def _unescape(value: str) -> str:
    return re.sub(r"\\[\\\"nrt]", lambda m: _UNESCAPES[m.group(0)], value)


def parse_statement(line: str) -> Quad:
    m = _QUAD_RE.match(line.strip())
    if not m:
        raise NQuadsFormatError(f"malformed N-Quads statement: {line!r}")
    return Quad(
        subject=m.group("s"),
        predicate=m.group("p"),
        object=m.group("o"),
        graph=m.group("g"),
    )


def parse_nquads(data: Union[str, Iterable[str]]) -> List[Quad]:
    """Parse an N-Quads document or statement list."""
    return [parse_statement(line) for line in to_nquads(data)]


def to_nquads(data: Any) -> List[str]:
    """Normalize a node payload (document string or list) into statements."""
    if isinstance(data, str):
        lines = data.splitlines()
    elif isinstance(data, (list, tuple)):
        lines = list(data)
    else:
        raise NQuadsFormatError(f"expected N-Quads text or a statement list, got {type(data).__name__}")
    out: List[str] = []
    for line in lines:
        if not isinstance(line, str):
            raise NQuadsFormatError(f"statement must be a string, got {type(line).__name__}")
        stripped = line.strip()
        if stripped:
            out.append(stripped)
    return out


def _object_value(term: str) -> Dict[str, Any]:
    if term.startswith("<") or term.startswith("_:"):
        return {"@id": _strip_iri(term)}
    m = _LITERAL_RE.match(term)
    if not m:
        raise NQuadsFormatError(f"malformed literal: {term!r}")
    out: Dict[str, Any] = {"@value": _unescape(m.group("v"))}
    if m.group("dt"):
        out["@type"] = m.group("dt")
    if m.group("lang"):
        out["@language"] = m.group("lang")
    return out


def to_graph(statements: Union[str, Iterable[str]]) -> Dict[str, Any]:
    """Convert statements into the structured graph form."""
    nodes: Dict[str, Dict[str, List[Any]]] = {}
    for quad in parse_nquads(statements):
        subject = _strip_iri(quad.subject)
        node = nodes.setdefault(subject, {})
        if _strip_iri(quad.predicate) == RDF_TYPE and quad.object.startswith("<"):
            node.setdefault("@type", []).append(_strip_iri(quad.object))
            continue
        node.setdefault(_strip_iri(quad.predicate), []).append(_object_value(quad.object))

    graph = []
    for subject in sorted(nodes):
        entry: Dict[str, Any] = {"@id": subject}
        for predicate in sorted(nodes[subject]):
            entry[predicate] = nodes[subject][predicate]
        graph.append(entry)
    return {"@graph": graph}


def format_assertion(statements: Iterable[str], output_format: OutputFormat) -> Any:
    """Render statements in the requested output format."""
    lines = to_nquads(list(statements))
    if output_format == OutputFormat.N_QUADS:
        parse_nquads(lines)
        return "\n".join(lines)
    return to_graph(lines)
