"""
Tests for context creation, derivation and scoring.
"""

from datetime import timedelta

import pytest
from starlette.datastructures import Headers

from chittycontext.lifecycle import (
    as_conversation,
    calculate_grade,
    complete_context,
    create_audit_event,
    create_child_context,
    create_context,
    create_from_request,
    demote_context,
    promote_context,
    record_outcome,
    track_message,
    update_workflow_step,
    utc_now,
)
from chittycontext.models.context import (
    AuditStatus,
    ContextGrade,
    ContextStatus,
    ContextType,
    ConversationContext,
    ConversationMessage,
    MessageRole,
    OutcomeType,
    StepStatus,
    WorkflowContext,
)
from chittycontext.utils.hashing import hash_ip

USER_ID = "01-U-SYS-0001-0-0000-S-X"


class FakeRequest:
    def __init__(self, headers: dict[str, str]):
        self.headers = Headers(headers)


class TestCreateContext:
    """Tests for root context creation."""

    def test_root_context_defaults(self):
        ctx = create_context(USER_ID, ContextType.SESSION)

        assert ctx.chitty_id == USER_ID
        assert ctx.type == ContextType.SESSION
        assert ctx.status == ContextStatus.ACTIVE
        assert ctx.depth == 0
        assert ctx.root_context_id == ctx.id
        assert ctx.parent_context_id is None
        assert ctx.is_root
        assert ctx.trust_score == 50
        assert ctx.grade == ContextGrade.C
        assert ctx.outcomes == ()
        assert ctx.created_at == ctx.updated_at

    def test_ids_are_generated_and_unique(self):
        first = create_context(USER_ID, "session")
        second = create_context(USER_ID, "session")

        assert first.id != second.id
        assert first.session_id != second.session_id
        assert first.request_id != second.request_id

    def test_supplied_options_are_kept(self):
        ctx = create_context(
            USER_ID,
            "agent",
            id="ctx-1",
            session_id="sess-1",
            request_id="req-1",
            tags=("batch",),
            preferences={"region": "us"},
        )

        assert ctx.id == "ctx-1"
        assert ctx.root_context_id == "ctx-1"
        assert ctx.session_id == "sess-1"
        assert ctx.request_id == "req-1"
        assert ctx.tags == ("batch",)
        assert ctx.preferences == {"region": "us"}

    def test_grade_is_derived_from_supplied_score(self):
        ctx = create_context(USER_ID, "session", trust_score=150, grade="F")

        assert ctx.trust_score == 100
        assert ctx.grade == ContextGrade.A

    @pytest.mark.parametrize("field", ["parent_context_id", "root_context_id", "depth"])
    def test_provenance_fields_are_rejected(self, field):
        """Children must be derived through create_child_context."""
        with pytest.raises(TypeError, match="create_child_context"):
            create_context(USER_ID, "session", **{field: "x"})

    def test_builds_requested_subtype(self):
        ctx = create_context(
            USER_ID,
            ContextType.CONVERSATION,
            ConversationContext,
            conversation_id="conv-1",
        )

        assert isinstance(ctx, ConversationContext)
        assert ctx.conversation_id == "conv-1"
        assert ctx.message_count == 0


class TestCreateFromRequest:
    """Tests for request-derived contexts."""

    def test_reads_session_and_user_agent_headers(self):
        request = FakeRequest(
            {
                "X-Session-ID": "sess-42",
                "User-Agent": "pytest/1.0",
                "CF-Connecting-IP": "203.0.113.7",
            }
        )

        ctx = create_from_request(USER_ID, request)

        assert ctx.session_id == "sess-42"
        assert ctx.user_agent == "pytest/1.0"
        assert ctx.source == "api"
        assert ctx.type == ContextType.SESSION
        assert ctx.ip_hash == hash_ip("203.0.113.7")

    def test_forwarded_for_uses_first_hop(self):
        request = FakeRequest({"X-Forwarded-For": "198.51.100.1, 10.0.0.1"})

        ctx = create_from_request(USER_ID, request, ContextType.MCP)

        assert ctx.ip_hash == hash_ip("198.51.100.1")
        assert ctx.type == ContextType.MCP

    def test_raw_address_is_never_stored(self):
        request = FakeRequest({"CF-Connecting-IP": "203.0.113.7"})

        ctx = create_from_request(USER_ID, request)

        assert "203.0.113.7" not in ctx.model_dump_json()

    def test_missing_headers(self):
        ctx = create_from_request(USER_ID, FakeRequest({}))

        assert ctx.session_id
        assert ctx.user_agent is None
        assert ctx.ip_hash is None


class TestCreateChildContext:
    """Tests for provenance chains."""

    def test_child_of_root(self):
        parent = create_context(USER_ID, "session", preferences={"tier": "gold"})

        child = create_child_context(parent, ContextType.AGENT)

        assert child.depth == 1
        assert child.parent_context_id == parent.id
        assert child.root_context_id == parent.id
        assert child.session_id == parent.session_id
        assert child.request_id == parent.request_id
        assert child.chitty_id == parent.chitty_id
        assert child.preferences == parent.preferences
        assert child.type == ContextType.AGENT
        assert child.trust_score == 50
        assert not child.is_root

    def test_grandchild_keeps_root(self):
        root = create_context(USER_ID, "session")
        child = create_child_context(root, "agent")

        grandchild = create_child_context(child, "mcp")

        assert grandchild.depth == 2
        assert grandchild.parent_context_id == child.id
        assert grandchild.root_context_id == root.id

    def test_child_does_not_inherit_score(self):
        parent = promote_context(create_context(USER_ID, "session"), "good")

        child = create_child_context(parent, "agent")

        assert child.trust_score == 50
        assert child.outcomes == ()

    def test_none_options_keep_inherited_values(self):
        parent = create_context(
            USER_ID, "session", preferences={"tier": "gold"}, dna_fingerprint="dna-1"
        )

        child = create_child_context(
            parent, "agent", preferences=None, dna_fingerprint=None, tags=None
        )

        assert child.preferences == {"tier": "gold"}
        assert child.dna_fingerprint == "dna-1"
        assert child.tags is None

    def test_explicit_options_override_inherited_values(self):
        parent = create_context(USER_ID, "session", preferences={"tier": "gold"})

        child = create_child_context(parent, "agent", preferences={"tier": "basic"})

        assert child.preferences == {"tier": "basic"}

    def test_provenance_override_is_rejected(self):
        parent = create_context(USER_ID, "session")

        with pytest.raises(TypeError):
            create_child_context(parent, "agent", depth=7)


class TestGrades:
    """Tests for calculate_grade."""

    @pytest.mark.parametrize(
        "score,grade",
        [
            (100, ContextGrade.A),
            (90, ContextGrade.A),
            (89, ContextGrade.B),
            (75, ContextGrade.B),
            (74, ContextGrade.C),
            (50, ContextGrade.C),
            (49, ContextGrade.D),
            (25, ContextGrade.D),
            (24, ContextGrade.F),
            (0, ContextGrade.F),
        ],
    )
    def test_thresholds(self, score, grade):
        assert calculate_grade(score) == grade


class TestRecordOutcome:
    """Tests for outcome recording and rescoring."""

    def test_appends_and_rescores(self):
        ctx = create_context(USER_ID, "session")

        updated = record_outcome(
            ctx, OutcomeType.SUCCESS, "read", "/items", score_impact=3, details={"n": 1}
        )

        assert updated.trust_score == 53
        assert updated.grade == ContextGrade.C
        assert len(updated.outcomes) == 1
        outcome = updated.outcomes[0]
        assert outcome.type == OutcomeType.SUCCESS
        assert outcome.action == "read"
        assert outcome.resource == "/items"
        assert outcome.score_impact == 3
        assert outcome.details == {"n": 1}
        assert outcome.id
        assert updated.updated_at >= ctx.updated_at

    def test_original_is_unchanged(self):
        ctx = create_context(USER_ID, "session")

        record_outcome(ctx, "error", "write", "/items", score_impact=-5)

        assert ctx.trust_score == 50
        assert ctx.outcomes == ()

    def test_outcomes_keep_order(self):
        ctx = create_context(USER_ID, "session")
        for action in ("first", "second", "third"):
            ctx = record_outcome(ctx, "info", action, "/")

        assert [o.action for o in ctx.outcomes] == ["first", "second", "third"]

    def test_impact_is_clamped(self):
        ctx = create_context(USER_ID, "session")

        updated = record_outcome(ctx, "success", "boost", "/", score_impact=25)

        assert updated.outcomes[0].score_impact == 10
        assert updated.trust_score == 60

    def test_score_is_clamped(self):
        ctx = create_context(USER_ID, "session", trust_score=95)
        low = create_context(USER_ID, "session", trust_score=3)

        assert record_outcome(ctx, "success", "a", "/", score_impact=10).trust_score == 100
        assert record_outcome(low, "error", "a", "/", score_impact=-10).trust_score == 0

    def test_other_fields_unchanged(self):
        ctx = create_context(USER_ID, "session", tags=("x",))

        updated = record_outcome(ctx, "info", "a", "/")

        assert updated.id == ctx.id
        assert updated.status == ctx.status
        assert updated.tags == ctx.tags
        assert updated.created_at == ctx.created_at


class TestTransitions:
    """Tests for promote, demote and complete."""

    def test_promote(self):
        ctx = create_context(USER_ID, "session", trust_score=85)

        promoted = promote_context(ctx, "consistent success")

        assert promoted.trust_score == 95
        assert promoted.grade == ContextGrade.A
        outcome = promoted.outcomes[-1]
        assert outcome.type == OutcomeType.SUCCESS
        assert outcome.action == "promote"
        assert outcome.resource == ctx.id
        assert outcome.details == {"reason": "consistent success"}
        assert promoted.status == ContextStatus.ACTIVE

    def test_demote(self):
        ctx = create_context(USER_ID, "session")

        demoted = demote_context(ctx, "suspicious")

        assert demoted.trust_score == 40
        assert demoted.grade == ContextGrade.D
        assert demoted.outcomes[-1].type == OutcomeType.WARNING
        assert demoted.outcomes[-1].score_impact == -10

    def test_complete_success(self):
        ctx = create_context(USER_ID, "session")

        completed = complete_context(ctx, True)

        assert completed.status == ContextStatus.COMPLETED
        assert completed.trust_score == 55
        assert completed.outcomes[-1].type == OutcomeType.SUCCESS

    def test_complete_failure(self):
        ctx = create_context(USER_ID, "session")

        failed = complete_context(ctx, False)

        assert failed.trust_score == 45
        assert failed.grade == ContextGrade.D
        assert failed.status == ContextStatus.FAILED
        assert len(failed.outcomes) == 1
        outcome = failed.outcomes[0]
        assert outcome.type == OutcomeType.ERROR
        assert outcome.action == "complete"
        assert outcome.score_impact == -5


class TestWorkflowSteps:
    """Tests for update_workflow_step."""

    def _workflow(self) -> WorkflowContext:
        return create_context(
            USER_ID,
            ContextType.WORKFLOW,
            WorkflowContext,
            workflow_id="wf-1",
            workflow_type="approval",
        )

    def test_new_step_is_appended(self):
        wf = update_workflow_step(self._workflow(), "review", StepStatus.RUNNING)

        assert [step.name for step in wf.steps] == ["review"]
        assert wf.current_step == "review"
        assert wf.steps[0].status == StepStatus.RUNNING
        assert wf.steps[0].started_at is not None
        assert wf.steps[0].completed_at is None

    def test_step_completion(self):
        wf = update_workflow_step(self._workflow(), "review", "running")
        started_at = wf.steps[0].started_at

        wf = update_workflow_step(wf, "review", "completed", result={"approved": True})

        step = wf.steps[0]
        assert len(wf.steps) == 1
        assert step.status == StepStatus.COMPLETED
        assert step.started_at == started_at
        assert step.completed_at is not None
        assert step.result == {"approved": True}

    def test_failed_step_keeps_error_and_order(self):
        wf = update_workflow_step(self._workflow(), "review", "completed")
        wf = update_workflow_step(wf, "provision", "failed", error="quota exceeded")

        assert [step.name for step in wf.steps] == ["review", "provision"]
        assert wf.steps[1].error == "quota exceeded"
        assert wf.current_step == "provision"


class TestConversations:
    """Tests for conversation helpers."""

    def test_as_conversation_keeps_base_fields(self):
        ctx = create_context(USER_ID, ContextType.SESSION)

        conversation = as_conversation(ctx, "conv-1")

        assert isinstance(conversation, ConversationContext)
        assert conversation.id == ctx.id
        assert conversation.type == ContextType.SESSION
        assert conversation.conversation_id == "conv-1"

    def test_as_conversation_is_idempotent(self):
        conversation = as_conversation(create_context(USER_ID, "session"), "conv-1")

        assert as_conversation(conversation, "conv-1") is conversation
        assert as_conversation(conversation, "conv-2").conversation_id == "conv-2"

    def test_track_message(self):
        conversation = as_conversation(create_context(USER_ID, "session"), "conv-1")
        message = ConversationMessage(
            id="m1",
            context_id=conversation.id,
            chitty_id=USER_ID,
            conversation_id="conv-1",
            timestamp=utc_now() + timedelta(seconds=1),
            role=MessageRole.ASSISTANT,
            content="hello",
            provider="anthropic",
            model="claude",
            token_count=12,
        )

        tracked = track_message(track_message(conversation, message), message)

        assert tracked.message_count == 2
        assert tracked.total_tokens == 24
        assert tracked.provider == "anthropic"
        assert tracked.model == "claude"
        assert tracked.updated_at == message.timestamp


class TestAuditEvent:
    def test_create_audit_event(self):
        ctx = create_context(USER_ID, "session")

        event = create_audit_event(
            ctx, "api.request", "GET", "/contexts", status="error", details={"x": 1}
        )

        assert event.context_id == ctx.id
        assert event.chitty_id == USER_ID
        assert event.event_type == "api.request"
        assert event.action == "GET"
        assert event.resource == "/contexts"
        assert event.status == AuditStatus.ERROR
        assert event.details == {"x": 1}
