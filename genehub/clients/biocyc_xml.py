"""
ptools-xml parsing for BioCyc `apixml` responses.

Only the few tags the gateway consumes are extracted, with narrow regular
expressions; attribute values may be single- or double-quoted. A parser never
raises: missing, empty or mangled input yields empty lists. Swap in another
`BiocycParser` if the upstream format changes.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Protocol

_PATHWAY_BLOCK = re.compile(r"<Pathway[^>]*frameid=['\"]([^'\"]+)['\"][^>]*>([\s\S]*?)</Pathway>", re.I)
_PATHWAY_TAG = re.compile(r"<Pathway[^>]*frameid=['\"]([^'\"]+)['\"]", re.I)
_GENE_BLOCK = re.compile(r"<Gene[^>]*frameid=['\"]([^'\"]+)['\"][^>]*>([\s\S]*?)</Gene>", re.I)
_GENE_TAG = re.compile(r"<Gene[^>]*frameid=['\"]([^'\"]+)['\"]", re.I)
_TU_TAG = re.compile(r"<Transcription-Unit[^>]*frameid=['\"]([^'\"]+)['\"]", re.I)
_COMMON_NAME = re.compile(r"<common-name[^>]*>([^<]+)</common-name>", re.I)


class BiocycParser(Protocol):
    def pathways(self, xml: Optional[str]) -> List[Dict[str, Any]]: ...

    def regulators(self, xml: Optional[str]) -> List[Dict[str, Any]]: ...

    def gene_ids(self, xml: Optional[str]) -> List[str]: ...

    def transcription_units(self, xml: Optional[str]) -> List[Dict[str, Any]]: ...


def _common_name(block: str) -> Optional[str]:
    m = _COMMON_NAME.search(block)
    return m.group(1).strip() if m else None


class PtoolsXmlParser:
    def pathways(self, xml: Optional[str]) -> List[Dict[str, Any]]:
        if not xml:
            return []
        out = []
        for frame_id, body in _PATHWAY_BLOCK.findall(xml):
            out.append({"id": frame_id, "name": _common_name(body) or frame_id.replace("-", " ")})
        if not out:
            # self-closing or truncated blocks: ids only
            out = [{"id": f, "name": f.replace("-", " ")} for f in _PATHWAY_TAG.findall(xml)]
        return out

    def regulators(self, xml: Optional[str]) -> List[Dict[str, Any]]:
        if not xml:
            return []
        out = []
        for frame_id, body in _GENE_BLOCK.findall(xml):
            name = _common_name(body)
            if name:
                out.append({"gene": frame_id, "name": name, "type": "unknown"})
        return out

    def gene_ids(self, xml: Optional[str]) -> List[str]:
        if not xml:
            return []
        return _GENE_TAG.findall(xml)

    def transcription_units(self, xml: Optional[str]) -> List[Dict[str, Any]]:
        if not xml:
            return []
        return [{"id": f, "terminators": [], "genes": []} for f in _TU_TAG.findall(xml)]
