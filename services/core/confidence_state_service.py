"""
Confidence State Service

Append-only tracking of confidence levels per (user, domain, key).
Confidence is descriptive, not evaluative: no scoring or ranking here.
Latest value is derived by creation order, never by mutation.
"""
from typing import Optional

import governance_config
from audit_logger import AuditRecord, block_mutation
from domain.bounds import is_bounded_number, printable
from exceptions import BoundsViolation, InvalidGovernanceInput, OwnershipViolation, UserNotFound
from logging_config import get_logger
from models import AuditEventType, ConfidenceDomain, ConfidenceState

logger = get_logger(__name__)

BLOCKED = AuditEventType.CONFIDENCE_MUTATION_BLOCKED


class ConfidenceStateService:

    async def record_confidence(
        self,
        uow,
        user_id: str,
        domain,
        key: str,
        value: float,
        reason: Optional[str] = None,
        model_set_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> ConfidenceState:
        domain = _coerce_domain(domain)
        if await uow.users.get(user_id) is None:
            raise UserNotFound(user_id)

        low, high = governance_config.CONFIDENCE_BOUNDS

        if not is_bounded_number(value, governance_config.CONFIDENCE_BOUNDS):
            await block_mutation(
                uow,
                BoundsViolation(
                    f"Confidence value must be between {low} and {high}.",
                    field="value", value=printable(value), bounds=(low, high),
                ),
                user_id=user_id, event_type=BLOCKED,
                domain=domain.value, key=key,
            )

        if model_set_id is not None:
            model_set = await uow.model_sets.get(model_set_id)
            if model_set is None or model_set.user_id != user_id:
                await block_mutation(
                    uow,
                    OwnershipViolation(
                        "ModelSet does not belong to user; cannot record confidence.",
                        user_id=user_id, entity_id=model_set_id,
                    ),
                    user_id=user_id, event_type=BLOCKED, modelSetId=model_set_id,
                )

        if session_id is not None:
            session = await uow.sessions.get(session_id)
            if session is None or session.user_id != user_id:
                await block_mutation(
                    uow,
                    OwnershipViolation(
                        "Session does not belong to user; cannot record confidence.",
                        user_id=user_id, entity_id=session_id,
                    ),
                    user_id=user_id, session_id=session_id, event_type=BLOCKED,
                )

        created = await uow.confidence_states.add(ConfidenceState(
            user_id=user_id,
            domain=domain,
            key=key,
            value=float(value),
            reason=reason,
            model_set_id=model_set_id,
            session_id=session_id,
            created_at=uow.clock(),
        ))

        await uow.audit.append(AuditRecord(
            event_type=AuditEventType.CONFIDENCE_RECORDED,
            user_id=user_id,
            session_id=session_id,
            meta={
                "domain": domain.value,
                "key": key,
                "value": float(value),
                "reason": reason,
                "modelSetId": model_set_id,
            },
        ))
        logger.info("confidence_recorded", user_id=user_id, domain=domain.value, key=key, value=float(value))
        return created

    async def get_latest_confidence(self, uow, user_id: str, domain, key: str) -> Optional[ConfidenceState]:
        return await uow.confidence_states.latest(
            ConfidenceState.user_id == user_id,
            ConfidenceState.domain == _coerce_domain(domain),
            ConfidenceState.key == key,
        )


def _coerce_domain(domain) -> ConfidenceDomain:
    try:
        return ConfidenceDomain(domain)
    except ValueError:
        raise InvalidGovernanceInput(f"Unknown confidence domain: {domain}", domain=str(domain))


confidence_state_service = ConfidenceStateService()
