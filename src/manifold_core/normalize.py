from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from .ids import deterministic_instance_id
from .ir import BlockInstanceIR, PageIR, ThemeIR
from .schema import (
    BlockEntry,
    ContentRecordFile,
    DraftBlockEntry,
    DraftPage,
    PageManifestFile,
    ThemeFile,
    parse_document,
)

logger = logging.getLogger(__name__)


def _sorted_map(value: Any) -> dict[str, Any]:
    """Key-sorted copy of a mapping; anything else (lists, scalars, None) degrades to ``{}``."""
    if not isinstance(value, Mapping):
        return {}
    names = sorted(name for name in value if isinstance(name, str) and name)
    return {name: value[name] for name in names}


_FREEFORM_BLOCK_MAPS = ("props", "styleOverrides", "style_overrides")


def _lenient_block(block: Any) -> Any:
    if not isinstance(block, Mapping):
        return block
    return {
        key: (_sorted_map(value) if key in _FREEFORM_BLOCK_MAPS else value)
        for key, value in block.items()
    }


def _coerce_page(page: DraftPage | Mapping[str, Any]) -> DraftPage:
    """Validate a raw page. Block ``props`` and ``styleOverrides`` that are not mappings become ``{}``."""
    if isinstance(page, DraftPage):
        return page
    raw = dict(page)
    if isinstance(raw.get("blocks"), list):
        raw["blocks"] = [_lenient_block(block) for block in raw["blocks"]]
    return parse_document(DraftPage, raw)


def _coerce_records(records: Iterable[ContentRecordFile | Mapping[str, Any]]) -> list[ContentRecordFile]:
    return [
        record if isinstance(record, ContentRecordFile) else parse_document(ContentRecordFile, record)
        for record in records
    ]


def _content_lookup(records: list[ContentRecordFile]) -> dict[str, ContentRecordFile]:
    return {record.id: record for record in records}


def _resolve_content(
    content_refs: Mapping[str, str],
    records_by_id: Mapping[str, ContentRecordFile],
) -> dict[str, dict[str, Any] | None]:
    resolved: dict[str, dict[str, Any] | None] = {}
    for slot in sorted(content_refs):
        record = records_by_id.get(content_refs[slot])
        resolved[slot] = dict(record.data) if record is not None else None
    return resolved


def _instance_id_for(page_id: str, seed: str, block: DraftBlockEntry, index: int) -> str:
    if block.instance_id:
        return block.instance_id
    return deterministic_instance_id(
        page_id=page_id,
        block_id=block.block_id,
        insertion_index=index,
        seed=seed,
    )


def _normalize_block(
    page_id: str,
    seed: str,
    block: DraftBlockEntry,
    index: int,
    records_by_id: Mapping[str, ContentRecordFile],
) -> BlockInstanceIR:
    return BlockInstanceIR(
        instance_id=_instance_id_for(page_id, seed, block, index),
        block_id=block.block_id,
        props=_sorted_map(block.props),
        content=_resolve_content(block.content_refs, records_by_id),
        styles=_sorted_map(block.style_overrides),
        visibility=block.visibility,
    )


def normalize_page_manifest_to_ir(
    *,
    page: DraftPage | Mapping[str, Any],
    content_records: Iterable[ContentRecordFile | Mapping[str, Any]],
    seed: str,
) -> PageIR:
    """Build the normalized projection of one page.

    Blocks keep their stored ``instanceId``; only blocks without one get an id
    derived from their position, so reordering an already-saved page never
    changes ids. A content reference to a record that does not exist resolves
    to ``None`` rather than failing.

    Args:
        page: A page document, or its raw mapping form.
        content_records: Every content record of the project.
        seed: The project seed from ``project.json``.

    Returns:
        The page IR.

    Raises:
        DocumentValidationError: If a raw page or record fails its schema.
    """
    draft = _coerce_page(page)
    records_by_id = _content_lookup(_coerce_records(content_records))
    blocks = [
        _normalize_block(draft.page_id, seed, block, index, records_by_id)
        for index, block in enumerate(draft.blocks)
    ]
    dangling = sum(1 for block in blocks for value in block.content.values() if value is None)
    if dangling:
        logger.debug("page %s has %d unresolved content reference(s)", draft.page_id, dangling)
    return PageIR(
        page_id=draft.page_id,
        route=draft.route,
        seo=draft.seo.model_copy(),
        blocks=blocks,
    )


def assign_missing_instance_ids(page: DraftPage | Mapping[str, Any], seed: str) -> PageManifestFile:
    """Return ``page`` as a persistable document with every block id filled in.

    Ids are generated exactly as :func:`normalize_page_manifest_to_ir` would,
    so writing the result pins them for all later reorders.
    """
    draft = _coerce_page(page)
    blocks = [
        BlockEntry(
            instance_id=_instance_id_for(draft.page_id, seed, block, index),
            block_id=block.block_id,
            props=dict(block.props),
            content_refs=dict(block.content_refs),
            style_overrides=dict(block.style_overrides),
            visibility=block.visibility,
        )
        for index, block in enumerate(draft.blocks)
    ]
    return PageManifestFile(
        page_id=draft.page_id,
        route=draft.route,
        title=draft.title,
        seo=draft.seo.model_copy(),
        blocks=blocks,
    )


def resolve_theme_ir(theme: ThemeFile) -> ThemeIR:
    return ThemeIR(tokens=dict(theme.tokens.model_dump(by_alias=True)))
