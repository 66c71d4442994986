"""
Onboarding ticket orchestrator.

Creates one parent QA ticket per onboarding ref and one child ticket per
resolved ticket group, then links every child to the parent ("child blocks
parent"). Each step searches before it creates, so a retry after a partial
run picks up the tickets that already exist instead of duplicating them.
"""

import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from sqlalchemy.exc import SQLAlchemyError
from clients.issue_tracker import DescriptionSection, IssueTrackerClient, build_description
from core.exceptions import MatrixResolutionError, TaskHubException, TicketCreationError
from ingestion.transformers.fields import get_field
from models.base import ItemType, RunStatus
from onboarding.config_resolver import OnboardingConfigRepository
from onboarding.ledger import OnboardingRunLedger
from schemas.onboarding import (
    ChildGroupPreview,
    OnboardingPayload,
    OnboardingPreview,
    OnboardingResult,
    ResolvedTicketGroup,
)
import logging

logger = logging.getLogger(__name__)

DRY_RUN_KEY = "(dry-run)"
PARENT_MARKER = "Quality Assurance"

SettingsGetter = Callable[[], Awaitable[Dict[str, str]]]


@dataclass
class OnboardingConfig:
    """Issue tracker settings for onboarding tickets"""
    project_key: str = "NT"
    issue_type: str = "Service Request"
    request_type_field: str = "customfield_10010"
    qa_request_type_id: Optional[str] = None
    onboarding_request_type_id: Optional[str] = None
    link_type: str = "Blocks"
    default_priority: str = "Medium"

    @classmethod
    def from_settings(cls, values: Dict[str, str]) -> "OnboardingConfig":
        defaults = cls()
        return cls(
            project_key=values.get("onboarding_project") or defaults.project_key,
            issue_type=values.get("onboarding_issue_type") or defaults.issue_type,
            request_type_field=values.get("onboarding_request_type_field") or defaults.request_type_field,
            qa_request_type_id=values.get("onboarding_rt_qa_id") or None,
            onboarding_request_type_id=values.get("onboarding_rt_onboarding_id") or None,
            link_type=values.get("onboarding_link_type") or defaults.link_type,
        )


def parent_summary(customer: str, ref: str) -> str:
    return f"{PARENT_MARKER} - {customer} ({ref})"


def child_prefix(group: ResolvedTicketGroup) -> str:
    capabilities = ", ".join(c.capability_name for c in group.capabilities)
    return f"Set up {capabilities} for "


def child_summary(group: ResolvedTicketGroup, customer: str, ref: str) -> str:
    return f"{child_prefix(group)}{customer} ({ref})"


def _jql_text(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class OnboardingOrchestrator:
    """
    Drive ticket creation for one onboarding payload.

    Flow per ref:
        cache hit -> done
        resolve matrix -> [dry run: preview]
        find-or-create parent -> find-or-create children -> link -> record result
    """

    def __init__(
        self,
        tracker_client: Optional[IssueTrackerClient],
        config_repository: OnboardingConfigRepository,
        run_ledger: OnboardingRunLedger,
        settings_getter: Optional[SettingsGetter] = None
    ):
        self.tracker = tracker_client
        self.config_repository = config_repository
        self.ledger = run_ledger
        self.settings_getter = settings_getter

    async def _load_config(self) -> OnboardingConfig:
        if self.settings_getter is None:
            return OnboardingConfig()
        return OnboardingConfig.from_settings(await self.settings_getter())

    async def execute(
        self,
        payload: OnboardingPayload,
        dry_run: bool = False,
        user_id: Optional[int] = None,
        filter_group_ids: Optional[List[int]] = None
    ) -> OnboardingResult:
        """
        Create (or find) the parent and child tickets for an onboarding.

        Raises:
            MatrixResolutionError: sale type resolves to no ticket groups
            TicketCreationError: parent ticket could not be created
            TaskHubException: issue tracker failure before children are processed
        """
        ref = payload.onboarding_ref
        customer = payload.customer.name
        prefix = f"[Onboarding:{ref}]"

        # 1. Idempotency
        if not dry_run:
            cached = await self.ledger.get_by_ref(ref)
            if cached is not None:
                logger.info(f"{prefix} Already completed as {cached.parent_key}, returning cached result")
                return OnboardingResult(
                    parent_key=cached.parent_key,
                    child_keys=list(cached.child_keys or []),
                    created_count=0,
                    linked_count=0,
                    existing=True,
                    dry_run=False,
                )

        # 2. Resolve
        groups = await self.config_repository.resolve_for_sale_type(payload.sale_type)
        if not groups:
            raise MatrixResolutionError(
                f"No ticket groups configured for sale type \"{payload.sale_type}\"",
                context={"sale_type": payload.sale_type, "onboarding_ref": ref}
            )

        if filter_group_ids:
            wanted = set(filter_group_ids)
            groups = [g for g in groups if g.ticket_group_id is not None and g.ticket_group_id in wanted]
            if not groups:
                logger.info(f"{prefix} No ticket groups left after filter {sorted(wanted)}")
                return OnboardingResult(parent_key="", dry_run=dry_run)

        preview = OnboardingPreview(
            parent_summary=parent_summary(customer, ref),
            child_summaries=[child_summary(g, customer, ref) for g in groups],
            child_groups=[
                ChildGroupPreview(
                    ticket_group_id=g.ticket_group_id,
                    ticket_group_name=g.ticket_group_name,
                    summary=child_summary(g, customer, ref),
                )
                for g in groups
            ],
        )

        # 3. Dry run
        if dry_run:
            logger.info(f"{prefix} Dry run: 1 parent + {len(groups)} children")
            return OnboardingResult(
                parent_key=DRY_RUN_KEY,
                child_keys=[DRY_RUN_KEY] * len(groups),
                dry_run=True,
                details=preview,
            )

        if self.tracker is None:
            raise TicketCreationError("Issue tracker is not configured", context={"onboarding_ref": ref})

        config = await self._load_config()
        run = await self.ledger.create(
            ref,
            payload=payload.model_dump(mode="json", by_alias=True),
            user_id=user_id,
        )

        parent_key: Optional[str] = None
        child_keys: List[str] = []
        created = 0
        linked = 0

        try:
            # 4. Parent
            parent_key = await self._find_parent(config, ref)
            parent_existed = parent_key is not None
            if parent_existed:
                logger.info(f"{prefix} Found existing parent {parent_key}")
            else:
                parent_key = await self._create_parent(config, payload, preview.parent_summary)
                created += 1
                logger.info(f"{prefix} Created parent {parent_key}")

            # 5. Children
            for group, summary in zip(groups, preview.child_summaries):
                try:
                    key = await self._find_child(config, ref, group, summary, {parent_key, *child_keys})
                    if key:
                        logger.info(f"{prefix} Found existing child {key} for {group.ticket_group_name}")
                    else:
                        key = await self._create_child(config, payload, group, summary)
                        created += 1
                        logger.info(f"{prefix} Created child {key} for {group.ticket_group_name}")
                    child_keys.append(key)
                except TaskHubException as e:
                    logger.error(f"{prefix} Child for {group.ticket_group_name} failed: {e.message}")

            # 6. Links
            linked = await self._link_children(config, parent_key, child_keys, prefix)

            # 7. Result
            status = RunStatus.SUCCESS if len(child_keys) == len(groups) else RunStatus.PARTIAL
            message = None
            if status == RunStatus.PARTIAL:
                message = f"Completed with {len(child_keys)}/{len(groups)} children"
                logger.warning(f"{prefix} {message}")

            await self.ledger.update(
                run.id,
                status=status,
                parent_key=parent_key,
                child_keys=child_keys,
                created_count=created,
                linked_count=linked,
                error_message=message,
            )
        except Exception as e:
            message = e.message if isinstance(e, TaskHubException) else str(e)
            logger.error(f"{prefix} Failed: {message}")
            try:
                await self.ledger.update(
                    run.id,
                    status=RunStatus.ERROR,
                    parent_key=parent_key,
                    child_keys=child_keys,
                    created_count=created,
                    linked_count=linked,
                    error_message=message,
                )
            except SQLAlchemyError as ledger_error:
                logger.error(f"{prefix} Could not record failed run #{run.id}: {ledger_error}")
            raise

        logger.info(
            f"{prefix} Done: parent {parent_key}, {len(child_keys)}/{len(groups)} children, "
            f"{created} created, {linked} linked"
        )
        return OnboardingResult(
            parent_key=parent_key,
            child_keys=child_keys,
            created_count=created,
            linked_count=linked,
            existing=parent_existed,
            dry_run=False,
            details=preview,
        )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def _search(self, config: OnboardingConfig, *terms: str) -> List[Dict[str, Any]]:
        clauses = [f"project = {_jql_text(config.project_key)}"]
        clauses.extend(f"summary ~ {_jql_text(term)}" for term in terms)
        query = " AND ".join(clauses) + " ORDER BY created ASC"
        return await self.tracker.search_by_query(query, fields=["summary"])

    async def _find_parent(self, config: OnboardingConfig, ref: str) -> Optional[str]:
        tag = f"({ref})"
        for issue in await self._search(config, tag, PARENT_MARKER):
            summary = get_field(issue, "summary") or ""
            if tag in summary and PARENT_MARKER in summary:
                return issue.get("key")
        return None

    async def _find_child(
        self,
        config: OnboardingConfig,
        ref: str,
        group: ResolvedTicketGroup,
        summary: str,
        claimed: Set[str]
    ) -> Optional[str]:
        # Child summaries name capabilities, not the group, so search on the ref alone
        tag = f"({ref})"
        candidates = [
            (issue.get("key"), get_field(issue, "summary") or "")
            for issue in await self._search(config, tag)
            if issue.get("key") not in claimed
        ]
        candidates = [(key, found) for key, found in candidates if found.endswith(tag)]

        # Exact summary first, then the same capability list under a renamed customer
        for key, found in candidates:
            if found == summary:
                return key
        prefix = child_prefix(group)
        for key, found in candidates:
            if found.startswith(prefix):
                return key
        return None

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def _base_fields(
        self,
        config: OnboardingConfig,
        summary: str,
        description: Dict[str, Any],
        due_date: str,
        request_type_id: Optional[str]
    ) -> Dict[str, Any]:
        fields = {
            "project": {"key": config.project_key},
            "issuetype": {"name": config.issue_type},
            "summary": summary,
            "description": description,
            "priority": {"name": config.default_priority},
            "duedate": due_date,
        }
        if config.request_type_field and request_type_id:
            fields[config.request_type_field] = {"id": request_type_id}
        return fields

    async def _create_parent(self, config: OnboardingConfig, payload: OnboardingPayload, summary: str) -> str:
        sections = [
            DescriptionSection(
                heading="Onboarding QA Gate",
                bullets=[
                    f"Customer: {payload.customer.name}",
                    f"Sale type: {payload.sale_type}",
                    f"Onboarding ref: {payload.onboarding_ref}",
                    f"Target due date: {payload.target_due_date}",
                ],
            ),
        ]
        if payload.config:
            sections.append(DescriptionSection(
                heading="Configuration",
                code=json.dumps(payload.config, indent=2, sort_keys=True),
            ))

        fields = self._base_fields(
            config, summary, build_description(sections),
            payload.target_due_date, config.qa_request_type_id
        )
        created = await self.tracker.create_issue(fields)
        key = (created or {}).get("key")
        if not key:
            raise TicketCreationError(
                "Issue tracker returned no key for the parent ticket",
                context={"onboarding_ref": payload.onboarding_ref}
            )
        return key

    async def _create_child(
        self,
        config: OnboardingConfig,
        payload: OnboardingPayload,
        group: ResolvedTicketGroup,
        summary: str
    ) -> str:
        sections = [DescriptionSection(
            heading=f"{group.ticket_group_name} onboarding",
            text=f"Customer: {payload.customer.name} | Ref: {payload.onboarding_ref}",
        )]
        for capability in group.capabilities:
            bullets = [
                f"{item.name} (bolt-on)" if item.item_type == ItemType.BOLT_ON else item.name
                for item in capability.items
            ]
            sections.append(DescriptionSection(
                heading=capability.capability_name,
                bullets=bullets or ["Set up required"],
            ))

        fields = self._base_fields(
            config, summary, build_description(sections),
            payload.target_due_date, config.onboarding_request_type_id
        )
        created = await self.tracker.create_issue(fields)
        key = (created or {}).get("key")
        if not key:
            raise TicketCreationError(
                f"Issue tracker returned no key for {group.ticket_group_name}",
                context={"onboarding_ref": payload.onboarding_ref}
            )
        return key

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    async def _linked_keys(self, parent_key: str) -> Set[str]:
        parent = await self.tracker.get_issue(parent_key, ["issuelinks"])
        keys = set()
        for link in get_field(parent or {}, "issuelinks") or []:
            for side in ("inwardIssue", "outwardIssue"):
                key = (link.get(side) or {}).get("key")
                if key:
                    keys.add(key)
        return keys

    async def _link_children(
        self,
        config: OnboardingConfig,
        parent_key: str,
        child_keys: List[str],
        prefix: str
    ) -> int:
        """Link each child that is not linked to the parent yet; returns links created"""
        if not child_keys:
            return 0

        already_linked = await self._linked_keys(parent_key)
        linked = 0
        for key in child_keys:
            if key in already_linked:
                continue
            try:
                await self.tracker.create_issue_link({
                    "type": {"name": config.link_type},
                    "outwardIssue": {"key": key},
                    "inwardIssue": {"key": parent_key},
                })
                linked += 1
            except TaskHubException as e:
                logger.error(f"{prefix} Link {key} -> {parent_key} failed: {e.message}")
        return linked
