"""
订阅领域错误分类

Business kinds (ValidationError / NotFoundError) and infrastructure kinds
(InfrastructureFailure) share one base so callers can catch either the exact
kind or the category. Infrastructure kinds are raised ``from`` the driver
error, keep ``__cause__`` when re-raising.
"""
from __future__ import annotations


class SubscriptionError(Exception):
    """Base for every error raised by the subscription core."""


class ValidationError(SubscriptionError, ValueError):
    pass


class InvalidPeriod(ValidationError):
    pass


class OverlapRejected(ValidationError):
    pass


class NotFoundError(SubscriptionError, LookupError):
    pass


class NoActivePeriod(NotFoundError):
    pass


class NothingToDelete(NotFoundError):
    pass


class InfrastructureFailure(SubscriptionError, RuntimeError):
    pass


class CreateFailed(InfrastructureFailure):
    pass


class ReadFailed(InfrastructureFailure):
    pass


class UpdateFailed(InfrastructureFailure):
    pass


class DeleteFailed(InfrastructureFailure):
    pass


class TotalCostFailed(InfrastructureFailure):
    pass


# ---------------- service-level kinds ----------------
# 服务层把仓储/驱动错误再包一层，__cause__ 保留下层错误；
# 同时继承 InfrastructureFailure，按类别捕获的调用方不受影响。


class ServiceError(SubscriptionError):
    """Raised by ``SubscriptionService`` when a unit fails below the business rules."""


class ServiceCreateFailed(ServiceError, InfrastructureFailure):
    pass


class ServiceReadFailed(ServiceError, InfrastructureFailure):
    pass


class ServiceUpdateFailed(ServiceError, InfrastructureFailure):
    pass


class ServiceDeleteFailed(ServiceError, InfrastructureFailure):
    pass


class ServiceTotalCostFailed(ServiceError, InfrastructureFailure):
    pass


def root_cause(err: BaseException) -> BaseException:
    """Walk ``__cause__`` down to the original exception."""
    seen = set()
    while err.__cause__ is not None and id(err) not in seen:
        seen.add(id(err))
        err = err.__cause__
    return err
