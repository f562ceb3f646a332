"""
IDENTITY VERSION SERVICE
========================

Append-only, versioned storage of identity model artifacts (CIM / FIM)
inside a user-owned ModelSet.

- Never updates a previous version; a change is a new row.
- version = max(version) + 1 per (model_set_id, type), starting at 1.
- Writer must own the parent ModelSet.
- ModelSets are created explicitly, never as a side effect of a write.

Author: AA-OS Core Team
Date: 2026-02-15
"""
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

from audit_logger import AuditRecord, block_mutation
from exceptions import (
    InvalidGovernanceInput,
    InvariantViolation,
    ModelSetNotFound,
    OwnershipViolation,
    UserNotFound,
)
from logging_config import get_logger
from models import AuditEventType, IdentityModelType, IdentityModelVersion, ModelSet, ModelSetStatus

logger = get_logger(__name__)


class IdentityVersionService:

    async def create_model_set(self, uow, user_id: str, label: Optional[str] = None) -> ModelSet:
        if await uow.users.get(user_id) is None:
            raise UserNotFound(user_id)

        model_set = await uow.model_sets.add(ModelSet(
            user_id=user_id,
            status=ModelSetStatus.DRAFT,
            label=label,
            created_at=uow.clock(),
        ))

        await uow.audit.append(AuditRecord(
            event_type=AuditEventType.MODEL_SET_CREATED,
            user_id=user_id,
            meta={"modelSetId": model_set.id, "label": label},
        ))
        logger.info("model_set_created", user_id=user_id, model_set_id=model_set.id)
        return model_set

    async def create_version(
        self,
        uow,
        user_id: str,
        model_set_id: str,
        type_,
        payload: Any,
    ) -> IdentityModelVersion:
        """
        Append the next version of `type_` under the model set.

        Raises:
            ModelSetNotFound / OwnershipViolation: after auditing MUTATION_BLOCKED
            InvariantViolation: a concurrent writer took the same version number
        """
        model_type = _coerce_type(type_)

        model_set = await uow.model_sets.get(model_set_id)
        if model_set is None:
            await block_mutation(
                uow, ModelSetNotFound(model_set_id, "ModelSet not found; cannot create identity version."),
                user_id=user_id, modelSetId=model_set_id,
            )

        if model_set.user_id != user_id:
            await block_mutation(
                uow,
                OwnershipViolation(
                    "ModelSet does not belong to user; cannot create identity version.",
                    user_id=user_id, entity_id=model_set_id,
                ),
                user_id=user_id, modelSetId=model_set_id,
            )

        next_version = await uow.identity_versions.max_version(model_set_id, model_type) + 1

        try:
            async with uow.session.begin_nested():
                created = await uow.identity_versions.add(IdentityModelVersion(
                    user_id=user_id,
                    model_set_id=model_set_id,
                    type=model_type,
                    version=next_version,
                    payload=payload,
                    created_at=uow.clock(),
                ))
        except IntegrityError:
            # Unique (model_set_id, type, version) lost to a concurrent writer
            raise InvariantViolation(
                "Identity version number already taken; retry the write.",
                invariant="identity_version_sequence",
                model_set_id=model_set_id,
                type=model_type.value,
                version=next_version,
            )

        await uow.audit.append(AuditRecord(
            event_type=AuditEventType.IDENTITY_VERSION_CREATED,
            user_id=user_id,
            meta={
                "modelSetId": model_set_id,
                "type": model_type.value,
                "version": next_version,
            },
        ))
        logger.info(
            "identity_version_created",
            user_id=user_id,
            model_set_id=model_set_id,
            type=model_type.value,
            version=next_version,
        )
        return created

    async def get_latest_version(self, uow, user_id: str, model_set_id: str, type_) -> Optional[IdentityModelVersion]:
        """None when the model set is missing or owned by someone else"""
        model_set = await uow.model_sets.get(model_set_id)
        if model_set is None or model_set.user_id != user_id:
            return None
        return await uow.identity_versions.latest_version(model_set_id, _coerce_type(type_))


def _coerce_type(type_) -> IdentityModelType:
    try:
        return IdentityModelType(type_)
    except ValueError:
        raise InvalidGovernanceInput(f"Unknown identity model type: {type_}", type=str(type_))


identity_version_service = IdentityVersionService()
