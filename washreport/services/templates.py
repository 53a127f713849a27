"""Saved report templates."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..models import (
    ColumnId,
    ExportLayout,
    ReportConfig,
    ReportTemplate,
    ReportType,
    SortDirection,
    SortSpec,
)
from .datasource import DataSource, QueryFilter

logger = logging.getLogger(__name__)

ENTITY = "report_templates"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc).replace(tzinfo=None)


SYSTEM_TEMPLATES: Tuple[ReportTemplate, ...] = (
    ReportTemplate(
        id="system-invoice-report",
        template_name="Client Invoice Report",
        description="Billable work per client and location with rates and line totals",
        report_type=ReportType.UNIFIED,
        config=ReportConfig(
            columns=[
                ColumnId.WORK_DATE.value,
                ColumnId.CLIENT_NAME.value,
                ColumnId.LOCATION_NAME.value,
                ColumnId.WORK_TYPE_NAME.value,
                ColumnId.FREQUENCY.value,
                ColumnId.QUANTITY.value,
                ColumnId.RATE.value,
                ColumnId.LINE_TOTAL.value,
            ],
            sorting=[SortSpec("client_name"), SortSpec("work_date", SortDirection.DESC)],
        ),
        is_shared=True,
        is_system_template=True,
    ),
    ReportTemplate(
        id="system-employee-performance",
        template_name="Employee Performance",
        description="Washes, revenue and average wash value per employee",
        report_type=ReportType.UNIFIED,
        config=ReportConfig(
            columns=[
                ColumnId.EMPLOYEE_NAME.value,
                ColumnId.TOTAL_QUANTITY.value,
                ColumnId.TOTAL_REVENUE.value,
                ColumnId.ENTRY_COUNT.value,
                ColumnId.AVG_LINE_VALUE.value,
            ],
            sorting=[SortSpec("employee_name")],
        ),
        is_shared=True,
        is_system_template=True,
    ),
)


class TemplateStore:
    """Persists report templates and QuickBooks export layouts through the data source."""

    def __init__(self, source: DataSource, clock: Callable[[], datetime] = _utcnow):
        self.source = source
        self.clock = clock
        self._system = {t.id: t for t in SYSTEM_TEMPLATES}

    def _load(self, record: Dict[str, Any]) -> Optional[ReportTemplate]:
        try:
            return ReportTemplate.from_record(record)
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.warning("Skipping unreadable template %s", record.get("id"), exc_info=True)
            return None

    def _stored(self, user: Optional[str]) -> List[ReportTemplate]:
        records = self.source.query(ENTITY, sort=[("template_name", True)])
        stored = [t for t in map(self._load, records) if t is not None]
        if user is not None:
            stored = [t for t in stored if t.is_shared or t.created_by == user]
        return [t for t in stored if not t.is_system_template]

    def list(self, user: Optional[str] = None, include_system: bool = True) -> List[ReportTemplate]:
        """Report-builder templates: system ones first, then shared and the user's own."""
        system = list(SYSTEM_TEMPLATES) if include_system else []
        return system + [t for t in self._stored(user) if not t.is_export_layout]

    def list_layouts(self, user: Optional[str] = None) -> List[ReportTemplate]:
        return [t for t in self._stored(user) if t.is_export_layout]

    def get(self, template_id: str) -> Optional[ReportTemplate]:
        if template_id in self._system:
            return self._system[template_id]
        records = self.source.query(ENTITY, [QueryFilter("id", "eq", template_id)], limit=1)
        return self._load(records[0]) if records else None

    def get_layout(self, template_id: str) -> Optional[ReportTemplate]:
        template = self.get(template_id)
        return template if template is not None and template.is_export_layout else None

    def _insert(self, name: str, report_type: ReportType, config_data: Dict[str, Any],
                description: Optional[str], created_by: Optional[str], is_shared: bool) -> ReportTemplate:
        record = {
            "template_name": name,
            "description": description or None,
            "report_type": report_type.value,
            "config": config_data,
            "created_by": created_by,
            "is_shared": is_shared,
            "is_system_template": False,
            "use_count": 0,
            "last_used_at": None,
            "created_at": self.clock().isoformat(),
        }
        saved = ReportTemplate.from_record(self.source.insert(ENTITY, record))
        logger.info("Saved %s template %r (%s)", report_type.value, saved.template_name, saved.id)
        return saved

    @staticmethod
    def _clean_name(template_name: str) -> str:
        name = (template_name or "").strip()
        if not name:
            raise ValueError("Please enter a template name")
        return name

    def save(
        self,
        template_name: str,
        config: ReportConfig,
        description: Optional[str] = None,
        created_by: Optional[str] = None,
        is_shared: bool = False,
    ) -> ReportTemplate:
        """Snapshot a configuration under a name; column ids are stored as given."""
        name = self._clean_name(template_name)
        if config.report_type == ReportType.QUICKBOOKS_EXPORT:
            raise ValueError("QuickBooks export templates are saved as export layouts")
        if not config.columns:
            raise ValueError("Please select at least one column")
        return self._insert(name, config.report_type, config.to_dict(), description, created_by, is_shared)

    def save_layout(
        self,
        template_name: str,
        layout: ExportLayout,
        description: Optional[str] = None,
        created_by: Optional[str] = None,
        is_shared: bool = True,
    ) -> ReportTemplate:
        """Store an invoice export column mapping and its defaults."""
        name = self._clean_name(template_name)
        return self._insert(name, ReportType.QUICKBOOKS_EXPORT, layout.to_dict(),
                            description, created_by, is_shared)

    def duplicate(self, template_id: str, created_by: Optional[str] = None) -> ReportTemplate:
        template = self.get(template_id)
        if template is None:
            raise KeyError(template_id)
        save = self.save_layout if template.is_export_layout else self.save
        return save(
            f"Copy of {template.template_name}",
            template.config,
            description=template.description,
            created_by=created_by,
        )

    def delete(self, template_id: str) -> None:
        if template_id in self._system:
            raise PermissionError("System templates cannot be deleted")
        self.source.delete(ENTITY, {"id": template_id})

    def record_use(self, template: ReportTemplate) -> bool:
        """Bump use count and last-used time; failures are logged, never raised."""
        if template.is_system_template:
            return False
        try:
            self.source.update(ENTITY, {
                "id": template.id,
                "use_count": template.use_count + 1,
                "last_used_at": self.clock().isoformat(),
            })
        except Exception:  # pylint: disable=broad-except
            logger.warning("Could not record use of template %s", template.id, exc_info=True)
            return False
        template.use_count += 1
        return True
