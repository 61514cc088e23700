"""
Config -> Kernel Bridges.

Converts a DocpostConfig into the kernel's own settings types.  These live in
docpost_config (the producer) because the kernel must NEVER import
docpost_config.

Usage:
    from docpost_config import get_active_config
    from docpost_config.bridges import pipeline_settings_from_config

    settings = pipeline_settings_from_config(get_active_config())
    pipeline = DocumentPipeline(session_factory, settings)
"""

from __future__ import annotations

from docpost_config.schema import DocpostConfig
from docpost_kernel.domain.extraction import NormalizationSettings
from docpost_kernel.domain.proposal import AccountMapping
from docpost_kernel.pipeline import PipelineSettings, WarehouseSeed


def normalization_settings_from_config(config: DocpostConfig) -> NormalizationSettings:
    return NormalizationSettings(
        currency=config.currency.code,
        tax_mode=config.tax.mode,
        tax_rate=config.tax.rate,
        tolerance=config.tax.tolerance,
        decimal_places=config.currency.decimal_places,
    )


def account_mapping_from_config(config: DocpostConfig) -> AccountMapping:
    return AccountMapping(
        payable=config.accounts.payable,
        inventory=config.accounts.inventory,
        expense=config.accounts.expense,
    )


def pipeline_settings_from_config(config: DocpostConfig) -> PipelineSettings:
    """Build the DocumentPipeline settings for ``config``."""
    return PipelineSettings(
        normalization=normalization_settings_from_config(config),
        accounts=account_mapping_from_config(config),
        document_prefix=config.numbering.document,
        journal_prefix=config.numbering.journal,
        stock_move_prefix=config.numbering.stock_move,
        item_prefix=config.numbering.item,
        warehouses=tuple(
            WarehouseSeed(code=w.code, name=w.name, active=w.active) for w in config.warehouses
        ),
        default_warehouse=config.default_warehouse,
    )
