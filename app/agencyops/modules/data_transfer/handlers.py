"""
Entity handlers for JSON import/export.

Each handler names the export key, the model, the handlers it depends on and the reference
columns to verify before a record is written. The processing order is derived from the
declared dependencies, not hard-coded.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from werkzeug.security import generate_password_hash

from app.agencyops.models import Base, Page, RolePermission, User, UserMenuPermission
from app.agencyops.modules.ad_accounts.models import AdAccount
from app.agencyops.modules.campaigns.models import AdCopySet, Campaign, CampaignDailySpend
from app.agencyops.modules.clients.models import Client
from app.agencyops.modules.employees.models import Employee
from app.agencyops.modules.finance.models import FinanceExpense, FinancePayment, FinanceProject, FinanceSetting
from app.agencyops.modules.salaries.models import Salary
from app.agencyops.modules.tags.models import Tag
from app.agencyops.modules.telegram.models import TelegramChatId
from app.agencyops.modules.work_reports.models import WorkReport

_HASH_PREFIXES = ("scrypt:", "pbkdf2:")


@dataclass(frozen=True)
class Reference:
    """attr must name an existing row of one of the target handlers (when set, or always if required)."""

    attr: str
    targets: tuple[str, ...]
    required: bool = False


@dataclass(frozen=True)
class EntityHandler:
    key: str
    model: type[Base]
    depends_on: tuple[str, ...] = ()
    references: tuple[Reference, ...] = ()
    # Columns that identify an existing row when the id does not match (unique constraints).
    natural_key: tuple[str, ...] = ()
    prepare: Callable[[dict[str, Any], bool], None] | None = None
    label: str = field(default="", compare=False)

    @property
    def display(self) -> str:
        return self.label or self.model.__name__


class CyclicDependencyError(ValueError):
    pass


def looks_hashed(password: str) -> bool:
    return password.startswith(_HASH_PREFIXES) and password.count("$") == 2


def _prepare_user(values: dict[str, Any], is_insert: bool) -> None:
    password = values.get("password")
    if not password:
        if is_insert:
            raise ValueError("password is required")
        values.pop("password", None)
        return
    if not looks_hashed(str(password)):
        values["password"] = generate_password_hash(str(password))


HANDLERS: tuple[EntityHandler, ...] = (
    EntityHandler("users", User, natural_key=("username",), prepare=_prepare_user),
    EntityHandler("pages", Page, natural_key=("page_key",)),
    EntityHandler("clients", Client),
    EntityHandler(
        "adAccounts",
        AdAccount,
        depends_on=("clients",),
        references=(Reference("client_id", ("clients",)),),
    ),
    EntityHandler(
        "campaigns",
        Campaign,
        depends_on=("adAccounts", "clients"),
        references=(Reference("ad_account_id", ("adAccounts",)), Reference("client_id", ("clients",))),
    ),
    EntityHandler(
        "adCopySets",
        AdCopySet,
        depends_on=("campaigns",),
        references=(Reference("campaign_id", ("campaigns",), required=True),),
    ),
    EntityHandler(
        "workReports",
        WorkReport,
        depends_on=("users",),
        references=(Reference("user_id", ("users",), required=True),),
    ),
    EntityHandler(
        "financeProjects",
        FinanceProject,
        depends_on=("clients",),
        references=(Reference("client_id", ("clients",)),),
    ),
    EntityHandler(
        "financePayments",
        FinancePayment,
        depends_on=("financeProjects", "clients"),
        references=(Reference("project_id", ("financeProjects",)), Reference("client_id", ("clients",))),
    ),
    EntityHandler(
        "financeExpenses",
        FinanceExpense,
        depends_on=("financeProjects",),
        references=(Reference("project_id", ("financeProjects",)),),
    ),
    EntityHandler("tags", Tag, natural_key=("name",)),
    EntityHandler(
        "employees",
        Employee,
        depends_on=("users",),
        references=(Reference("user_id", ("users",)),),
    ),
    EntityHandler(
        "rolePermissions",
        RolePermission,
        depends_on=("pages",),
        references=(Reference("page_id", ("pages",), required=True),),
        natural_key=("role", "page_id"),
    ),
    EntityHandler("financeSettings", FinanceSetting, natural_key=("key",)),
    EntityHandler(
        "salaries",
        Salary,
        depends_on=("employees", "users"),
        references=(Reference("employee_id", ("employees", "users"), required=True),),
        natural_key=("employee_id", "month"),
    ),
    EntityHandler(
        "campaignDailySpends",
        CampaignDailySpend,
        depends_on=("campaigns",),
        references=(Reference("campaign_id", ("campaigns",), required=True),),
        natural_key=("campaign_id", "spend_date"),
    ),
    EntityHandler(
        "userMenuPermissions",
        UserMenuPermission,
        depends_on=("users",),
        references=(Reference("user_id", ("users",), required=True),),
        natural_key=("user_id",),
    ),
    EntityHandler("telegramChatIds", TelegramChatId, natural_key=("chat_id",)),
)


def handler_map(handlers: tuple[EntityHandler, ...] = HANDLERS) -> dict[str, EntityHandler]:
    return {h.key: h for h in handlers}


def import_order(handlers: tuple[EntityHandler, ...] = HANDLERS) -> list[EntityHandler]:
    """
    Kahn's algorithm over depends_on. Among ready handlers the earliest-declared wins, so the
    result is deterministic and follows declaration order wherever dependencies allow.
    """
    by_key = handler_map(handlers)
    position = {h.key: i for i, h in enumerate(handlers)}
    indegree = {h.key: 0 for h in handlers}
    dependents: dict[str, list[str]] = {h.key: [] for h in handlers}
    for h in handlers:
        for dep in h.depends_on:
            if dep not in by_key:
                raise ValueError(f"{h.key} depends on unknown entity {dep}")
            indegree[h.key] += 1
            dependents[dep].append(h.key)

    ready = sorted((k for k, n in indegree.items() if n == 0), key=position.__getitem__)
    ordered: list[EntityHandler] = []
    while ready:
        key = ready.pop(0)
        ordered.append(by_key[key])
        for child in dependents[key]:
            indegree[child] -= 1
            if indegree[child] == 0:
                ready.append(child)
        ready.sort(key=position.__getitem__)

    if len(ordered) != len(handlers):
        stuck = sorted(k for k, n in indegree.items() if n > 0)
        raise CyclicDependencyError(f"Dependency cycle between: {', '.join(stuck)}")
    return ordered
