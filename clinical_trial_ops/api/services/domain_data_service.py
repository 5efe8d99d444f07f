"""
Domain Data Service
SDTM-like domain records and the sources they are imported from
"""

import json
import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from clinical_trial_ops.api.services.trial_service import require_trial
from clinical_trial_ops.core.error_handling import RecordNotFoundError
from clinical_trial_ops.db.models import DomainData, DomainSource, select_domain_source, utcnow

logger = logging.getLogger(__name__)


def encode_record(record: Union[str, Dict[str, Any]]) -> str:
    """Records are stored as JSON text; strings are assumed to be encoded already"""
    return record if isinstance(record, str) else json.dumps(record)


def decode_record(row: DomainData) -> Optional[Dict[str, Any]]:
    try:
        return json.loads(row.record_data)
    except (TypeError, ValueError):
        logger.warning(f"Could not parse record data for record {row.id}")
        return None


class DomainDataService:
    def __init__(self, db: Session):
        self.db = db

    def replace_records(self, trial_id: int, domain: str, source: str,
                        records: List[Union[str, Dict[str, Any]]]) -> List[DomainData]:
        """Replace every record of (trial, domain, source); ids are ``{domain}-{source}-{n}``"""
        require_trial(self.db, trial_id)
        self.db.execute(delete(DomainData).where(
            DomainData.trial_id == trial_id,
            DomainData.domain == domain,
            DomainData.source == source,
        ))
        now = utcnow()
        rows = [
            DomainData(
                trial_id=trial_id,
                domain=domain,
                source=source,
                record_id=f"{domain}-{source}-{index + 1}",
                record_data=encode_record(record),
                imported_at=now,
            )
            for index, record in enumerate(records)
        ]
        self.db.add_all(rows)
        self.db.commit()
        logger.info(f"Stored {len(rows)} {domain} records from {source} for trial {trial_id}")
        return rows

    def get_records(self, trial_id: int, domain: str, source: str) -> List[DomainData]:
        stmt = select(DomainData).where(
            DomainData.trial_id == trial_id,
            DomainData.domain == domain,
            DomainData.source == source,
        ).order_by(DomainData.id)
        return list(self.db.scalars(stmt))

    def upsert_source(self, data: Dict[str, Any]) -> tuple:
        """Insert or update the source matching (trial, domain, source); returns (row, created)"""
        require_trial(self.db, data['trial_id'])
        existing = self.db.scalars(
            select_domain_source(data['trial_id'], data['domain'], data['source'])
        ).first()
        if existing is not None:
            for key in ('source_type', 'system', 'integration_method', 'format'):
                setattr(existing, key, data[key])
            for key in ('description', 'mapping_details', 'frequency', 'contact'):
                if data.get(key) is not None:
                    setattr(existing, key, data[key])
            self.db.commit()
            self.db.refresh(existing)
            return existing, False

        source = DomainSource(**data)
        self.db.add(source)
        self.db.commit()
        self.db.refresh(source)
        return source, True

    def get_sources(self, trial_id: int, domain: str) -> List[DomainSource]:
        stmt = select(DomainSource).where(
            DomainSource.trial_id == trial_id,
            DomainSource.domain == domain,
        ).order_by(DomainSource.id)
        return list(self.db.scalars(stmt))

    def get_trial_domains(self, trial_id: int) -> List[str]:
        stmt = select(DomainData.domain).where(DomainData.trial_id == trial_id).distinct().order_by(
            DomainData.domain)
        return list(self.db.scalars(stmt))

    def get_trial_domain_sources(self, trial_id: int, domain: str) -> List[str]:
        stmt = select(DomainData.source).where(
            DomainData.trial_id == trial_id,
            DomainData.domain == domain,
        ).distinct().order_by(DomainData.source)
        return list(self.db.scalars(stmt))

    # ------------------------------------------------------------------
    # Single records
    # ------------------------------------------------------------------

    def add_record(self, trial_id: int, domain: str, source: str, record_data: Union[str, Dict[str, Any]],
                   record_id: Optional[str] = None) -> DomainData:
        require_trial(self.db, trial_id)
        if not record_id:
            count = self.db.scalar(select(func.count(DomainData.id)).where(
                DomainData.trial_id == trial_id,
                DomainData.domain == domain,
                DomainData.source == source,
            )) or 0
            record_id = f"{domain}-{trial_id}-{count + 1}"

        row = DomainData(
            trial_id=trial_id,
            domain=domain,
            source=source,
            record_id=record_id,
            record_data=encode_record(record_data),
            imported_at=utcnow(),
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def get_record(self, pk: int) -> DomainData:
        row = self.db.get(DomainData, pk)
        if row is None:
            raise RecordNotFoundError("Record not found", entity="domain_record", entity_id=pk)
        return row

    def update_record(self, pk: int, record_data: Union[str, Dict[str, Any]]) -> DomainData:
        row = self.get_record(pk)
        row.record_data = encode_record(record_data)
        row.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(row)
        return row

    def delete_record(self, pk: int) -> None:
        row = self.get_record(pk)
        self.db.delete(row)
        self.db.commit()
