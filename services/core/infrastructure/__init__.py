# Infrastructure Layer
from .uow import (
    UnitOfWork,
    UoWProvider,
    create_uow_provider
)
