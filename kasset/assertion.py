"""Assertion identity derivation.

Turns arbitrary structured content (a JSON-LD-like mapping, a ``@graph``
document, or a list of nodes) into an *assertion*: a sorted, de-duplicated
sequence of N-Quads statements, and derives its 32-byte root.

Canonical form:

    subject     ``@id`` when present, otherwise ``_:c14n<hash>`` where the
                hash covers the node's sorted-key JSON, so key order never
                changes the label
    predicate   key expanded against ``@context`` (term map, prefixes,
                ``@vocab``; default vocabulary http://schema.org/)
    object      plain / typed / language literal, IRI, or nested node

Everything in this module is pure: no I/O, no shared state.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple, Union

from kasset.core import canonical_json_bytes, sha256_bytes
from kasset.errors import ContentFormatError
from kasset.merkle import merkle_root


RDF_TYPE = "http://www.w3.org/1999/02/22-rdf-syntax-ns#type"
XSD = "http://www.w3.org/2001/XMLSchema#"
XSD_STRING = XSD + "string"
XSD_INTEGER = XSD + "integer"
XSD_DOUBLE = XSD + "double"
XSD_BOOLEAN = XSD + "boolean"
DEFAULT_VOCAB = "http://schema.org/"

# Links a public assertion to the root of its private counterpart.
PRIVATE_ASSERTION_PREDICATE = "https://ontology.origintrail.io/dkg/1.0#privateAssertionID"

_IRI_FORBIDDEN = re.compile(r'[\s<>"{}|^`\\]')
_LINK_RE = re.compile(
    r'^(?:<[^<>"\s]*>|_:\S+)\s+<(?P<p>[^<>"\s]*)>\s+(?:"(?P<v>(?:[^"\\]|\\.)*)")?'
)


# =============================================================================
# CONTEXT
# =============================================================================

@dataclass(frozen=True)
class _Context:
    vocab: str = DEFAULT_VOCAB
    terms: Mapping[str, str] = field(default_factory=dict)

    def extend(self, ctx: Any) -> "_Context":
        if ctx is None:
            return self
        if isinstance(ctx, list):
            out = self
            for item in ctx:
                out = out.extend(item)
            return out
        if isinstance(ctx, str):
            vocab = ctx if ctx.endswith(("/", "#")) else ctx + "/"
            return _Context(vocab=vocab, terms=self.terms)
        if isinstance(ctx, dict):
            vocab = ctx.get("@vocab", self.vocab)
            if not isinstance(vocab, str):
                raise ContentFormatError("@vocab must be a string")
            terms = dict(self.terms)
            for key, value in ctx.items():
                if not isinstance(key, str):
                    raise ContentFormatError(f"context keys must be strings, got {key!r}")
                if key.startswith("@"):
                    continue
                if isinstance(value, str):
                    terms[key] = value
                elif isinstance(value, dict) and isinstance(value.get("@id"), str):
                    terms[key] = value["@id"]
                else:
                    raise ContentFormatError(f"unsupported context definition for {key!r}")
            return _Context(vocab=vocab, terms=terms)
        raise ContentFormatError(f"unsupported @context of type {type(ctx).__name__}")

    def expand(self, term: str, vocab: bool = True) -> str:
        if term in self.terms:
            term = self.terms[term]
        if ":" in term:
            prefix, suffix = term.split(":", 1)
            if prefix in self.terms and not suffix.startswith("//"):
                return self.terms[prefix] + suffix
            return term
        return self.vocab + term if vocab else term


# =============================================================================
# TERM RENDERING
# =============================================================================

def _escape(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


def _iri(value: str) -> str:
    if value.startswith("_:"):
        return value
    if ":" not in value or _IRI_FORBIDDEN.search(value):
        raise ContentFormatError(f"not an absolute IRI: {value!r}")
    return f"<{value}>"


def _literal(value: str, datatype: Optional[str] = None, language: Optional[str] = None) -> str:
    out = f'"{_escape(value)}"'
    if language:
        return f"{out}@{language}"
    if datatype and datatype != XSD_STRING:
        return f"{out}^^{_iri(datatype)}"
    return out


def canonical_double(value: float) -> str:
    """Render a float in canonical ``xsd:double`` form (``1.5E0``)."""
    if math.isnan(value) or math.isinf(value):
        raise ContentFormatError(f"non-finite number is not representable: {value!r}")
    mantissa, exponent = f"{value:.15E}".split("E")
    mantissa = mantissa.rstrip("0")
    if mantissa.endswith("."):
        mantissa += "0"
    return f"{mantissa}E{int(exponent)}"


def _iter_values(value: Any) -> Iterator[Any]:
    if isinstance(value, (list, tuple)):
        for item in value:
            yield from _iter_values(item)
    else:
        yield value


# =============================================================================
# FLATTENING
# =============================================================================

class _Flattener:
    """Collects statements while walking a node tree."""

    def __init__(self) -> None:
        self.statements: Set[str] = set()

    def _emit(self, subject: str, predicate: str, obj: str) -> None:
        self.statements.add(f"{subject} {_iri(predicate)} {obj} .")

    def _subject(self, node: Dict[str, Any], ctx: _Context) -> str:
        node_id = node.get("@id")
        if node_id is not None:
            if not isinstance(node_id, str):
                raise ContentFormatError("@id must be a string")
            return _iri(ctx.expand(node_id, vocab=False))
        try:
            label = sha256_bytes(canonical_json_bytes(node))[:16]
        except (TypeError, ValueError) as e:
            raise ContentFormatError(f"content is not serializable: {e}") from e
        return f"_:c14n{label}"

    def node(self, node: Any, ctx: _Context) -> str:
        if not isinstance(node, dict):
            raise ContentFormatError(f"expected an object node, got {type(node).__name__}")
        ctx = ctx.extend(node.get("@context"))
        subject = self._subject(node, ctx)

        for key, value in node.items():
            if not isinstance(key, str):
                raise ContentFormatError(f"keys must be strings, got {key!r}")
            if key in ("@id", "@context"):
                continue
            if key == "@graph":
                for item in _iter_values(value):
                    if item is not None:
                        self.node(item, ctx)
                continue
            if key == "@type":
                for t in _iter_values(value):
                    if not isinstance(t, str):
                        raise ContentFormatError("@type values must be strings")
                    self._emit(subject, RDF_TYPE, _iri(ctx.expand(t)))
                continue
            if key.startswith("@"):
                raise ContentFormatError(f"unsupported keyword {key!r}")

            predicate = ctx.expand(key)
            for item in _iter_values(value):
                obj = self._object(item, ctx)
                if obj is not None:
                    self._emit(subject, predicate, obj)
        return subject

    def _object(self, value: Any, ctx: _Context) -> Optional[str]:
        if value is None:
            return None
        # bool before int: bool is an int subclass
        if isinstance(value, bool):
            return _literal("true" if value else "false", XSD_BOOLEAN)
        if isinstance(value, int):
            return _literal(str(value), XSD_INTEGER)
        if isinstance(value, float):
            return _literal(canonical_double(value), XSD_DOUBLE)
        if isinstance(value, str):
            return _literal(value)
        if isinstance(value, dict):
            if "@value" in value:
                return self._value_object(value, ctx)
            if set(value) == {"@id"}:
                if not isinstance(value["@id"], str):
                    raise ContentFormatError("@id must be a string")
                return _iri(ctx.expand(value["@id"], vocab=False))
            return self.node(value, ctx)
        raise ContentFormatError(f"unsupported value type {type(value).__name__}")

    def _value_object(self, value: Dict[str, Any], ctx: _Context) -> str:
        raw = value["@value"]
        datatype = value.get("@type")
        language = value.get("@language")
        if datatype is not None and not isinstance(datatype, str):
            raise ContentFormatError("@type of a value object must be a string")
        if language is not None and not isinstance(language, str):
            raise ContentFormatError("@language must be a string")
        if isinstance(raw, bool):
            return _literal("true" if raw else "false", datatype and ctx.expand(datatype) or XSD_BOOLEAN)
        if isinstance(raw, int):
            return _literal(str(raw), datatype and ctx.expand(datatype) or XSD_INTEGER)
        if isinstance(raw, float):
            return _literal(canonical_double(raw), datatype and ctx.expand(datatype) or XSD_DOUBLE)
        if not isinstance(raw, str):
            raise ContentFormatError("@value must be a string, number or boolean")
        return _literal(raw, ctx.expand(datatype) if datatype else None, language)


# =============================================================================
# ASSERTION
# =============================================================================

@dataclass(frozen=True)
class Assertion:
    """
    Canonical, content-addressed statement sequence.

    Immutable; the root and size metrics are pure functions of the
    statements.
    """
    statements: Tuple[str, ...]

    @classmethod
    def from_statements(cls, statements: Iterable[str]) -> "Assertion":
        cleaned = {s.strip() for s in statements if isinstance(s, str) and s.strip()}
        return cls(statements=tuple(sorted(cleaned)))

    @cached_property
    def root(self) -> str:
        return compute_root(self)

    @property
    def size_bytes(self) -> int:
        return len(self.to_nquads().encode("utf-8"))

    @property
    def triples_number(self) -> int:
        return len(self.statements)

    @property
    def chunks_number(self) -> int:
        # one Merkle leaf per statement
        return len(self.statements)

    def to_nquads(self) -> str:
        return "\n".join(self.statements)

    def __len__(self) -> int:
        return len(self.statements)

    def __iter__(self) -> Iterator[str]:
        return iter(self.statements)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root,
            "statements": list(self.statements),
            "size_bytes": self.size_bytes,
            "triples_number": self.triples_number,
            "chunks_number": self.chunks_number,
        }


def derive_assertion(content: Any) -> Assertion:
    """Canonicalize structured content into an assertion.

    Raises:
        ContentFormatError: content is not an object/graph, or yields no
            statements.
    """
    if isinstance(content, (list, tuple)):
        nodes = list(content)
    elif isinstance(content, dict):
        nodes = [content]
    else:
        raise ContentFormatError(
            f"content must be an object or a list of objects, got {type(content).__name__}"
        )

    flattener = _Flattener()
    root_ctx = _Context()
    for node in nodes:
        if node is None:
            continue
        flattener.node(node, root_ctx)

    if not flattener.statements:
        raise ContentFormatError("content produced no statements")
    return Assertion(statements=tuple(sorted(flattener.statements)))


def compute_root(assertion: Union[Assertion, Sequence[str]]) -> str:
    """Deterministic root over the sorted statement sequence."""
    statements = assertion.statements if isinstance(assertion, Assertion) else assertion
    cleaned = sorted(s.strip() for s in statements if isinstance(s, str) and s.strip())
    if not cleaned:
        raise ContentFormatError("cannot compute the root of an empty assertion")
    return merkle_root(cleaned)


# =============================================================================
# PUBLIC / PRIVATE PARTITIONS
# =============================================================================

@dataclass(frozen=True)
class AssetAssertions:
    """Public assertion plus the optional private assertion it links to."""
    public: Assertion
    private: Optional[Assertion] = None

    @property
    def public_root(self) -> str:
        return self.public.root

    @property
    def private_root(self) -> Optional[str]:
        return self.private.root if self.private is not None else None

    def all(self) -> List[Assertion]:
        return [self.public] + ([self.private] if self.private is not None else [])


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (dict, list, tuple)) and len(value) == 0)


def split_content(content: Any) -> Dict[str, Any]:
    """Normalize asset content into ``{"public": ..., "private": ...}``.

    A mapping with neither partition key is treated as public content.
    """
    if not isinstance(content, dict):
        raise ContentFormatError(f"asset content must be an object, got {type(content).__name__}")
    if _is_empty(content.get("public")) and _is_empty(content.get("private")):
        if "public" in content or "private" in content:
            raise ContentFormatError("asset content has no public or private data")
        return {"public": content, "private": None}
    return {"public": content.get("public"), "private": content.get("private")}


def _link_match(statement: str) -> Optional[re.Match]:
    m = _LINK_RE.match(statement.strip())
    if m and m.group("p") == PRIVATE_ASSERTION_PREDICATE:
        return m
    return None


def link_statements(statements: Iterable[str]) -> List[str]:
    """Statements whose predicate is the private linking predicate."""
    return [s for s in statements if _link_match(s)]


def build_asset_assertions(content: Any) -> AssetAssertions:
    """Derive the public assertion and, when present, the private one.

    The public assertion carries exactly one statement with the reserved
    linking predicate whose object is the private root.
    """
    parts = split_content(content)
    public = parts["public"]
    private = parts["private"]

    private_assertion: Optional[Assertion] = None
    if not _is_empty(private):
        private_assertion = derive_assertion(private)

    graph = [
        None if _is_empty(public) else public,
        {PRIVATE_ASSERTION_PREDICATE: private_assertion.root} if private_assertion else None,
    ]
    public_assertion = derive_assertion({"@graph": graph})

    links = link_statements(public_assertion.statements)
    expected = 1 if private_assertion is not None else 0
    if len(links) != expected:
        raise ContentFormatError(
            f"reserved predicate {PRIVATE_ASSERTION_PREDICATE} may not appear in public content"
        )
    return AssetAssertions(public=public_assertion, private=private_assertion)


def extract_private_root(statements: Iterable[str]) -> Optional[str]:
    """Return the private root referenced by a public assertion, if any."""
    for statement in statements:
        match = _link_match(statement)
        if match and match.group("v"):
            return match.group("v")
    return None
