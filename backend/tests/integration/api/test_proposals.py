"""
Integration tests for the proposal lifecycle API.

WHAT: Tests for submitting, editing, transitioning, accepting, rejecting,
reading, deleting proposals and attaching files via HTTP.

WHY: Proposals are binding offers. These tests ensure:
1. Totals are derived server-side and amounts are validated
2. Schedule rules reject inconsistent dates before anything is stored
3. Accepting one proposal rejects its pending siblings and awards the project
4. A second acceptance on an awarded project is refused
5. Errors come back in the standard JSON envelope

HOW: Uses pytest-asyncio with AsyncClient for HTTP testing. The clock is
pinned to 2025-01-01, and the file store keeps uploads in memory.
"""

import pytest
from unittest.mock import patch
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from homebid.models.project import ProjectStatus
from homebid.models.proposal import ProposalStatus
from homebid.services.acceptance_coordinator import AcceptanceCoordinator

from tests.factories import (
    CONTRACTOR_ID,
    SECOND_CONTRACTOR_ID,
    THIRD_CONTRACTOR_ID,
    ProjectFactory,
    ProposalFactory,
    contractor_headers,
    homeowner_headers,
    proposal_payload,
)


class TestProposalSubmit:
    """Integration tests for proposal submission."""

    @pytest.mark.asyncio
    async def test_submit_derives_total(self, client: AsyncClient, db_session: AsyncSession):
        """
        Test that the total includes tax.

        WHY: A subtotal of 1000 with 13% tax must be offered at 1130.
        """
        project = await ProjectFactory.create(db_session)

        response = await client.post(
            "/api/proposals",
            headers=contractor_headers(),
            json=proposal_payload(project.id),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "submitted"
        assert data["total_amount"] == "1130.00"
        assert data["subtotal_amount"] == "1000.00"
        assert data["contractor_id"] == CONTRACTOR_ID
        assert data["homeowner_id"] == project.creator_id
        assert data["submitted_date"] is not None
        assert data["is_selected"] is False
        assert data["is_editable"] is True

    @pytest.mark.asyncio
    async def test_client_total_is_ignored(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)

        response = await client.post(
            "/api/proposals",
            headers=contractor_headers(),
            json=proposal_payload(project.id, total_amount="1.00"),
        )

        assert response.status_code == 201
        assert response.json()["total_amount"] == "1130.00"

    @pytest.mark.asyncio
    async def test_submit_as_draft(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)

        response = await client.post(
            "/api/proposals",
            headers=contractor_headers(),
            json=proposal_payload(project.id, submit=False),
        )

        assert response.status_code == 201
        assert response.json()["status"] == "draft"
        assert response.json()["submitted_date"] is None

    @pytest.mark.asyncio
    async def test_expiry_after_start_rejected(self, client: AsyncClient, db_session: AsyncSession):
        """
        Test that an offer cannot outlive the work start.

        WHY: Start 2025-01-10 with expiry 2025-01-15 would let the homeowner
        accept after work was due to begin.
        """
        project = await ProjectFactory.create(db_session)

        response = await client.post(
            "/api/proposals",
            headers=contractor_headers(),
            json=proposal_payload(
                project.id,
                proposed_start_date="2025-01-10",
                expiry_date="2025-01-15",
            ),
        )

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "ValidationError"
        rules = [v["rule"] for v in data["details"]["violations"]]
        assert "expiry_on_or_before_start" in rules

    @pytest.mark.asyncio
    async def test_deposit_above_total_rejected(self, client: AsyncClient, db_session: AsyncSession):
        """
        Test that a deposit larger than the total is refused.

        WHY: A 5000 deposit on a 4000 job is not a deposit. Nothing is stored.
        """
        project = await ProjectFactory.create(db_session)

        response = await client.post(
            "/api/proposals",
            headers=contractor_headers(),
            json=proposal_payload(
                project.id,
                subtotal_amount="4000.00",
                tax_included=True,
                deposit_amount="5000.00",
            ),
        )

        assert response.status_code == 400
        violations = response.json()["details"]["violations"]
        assert [v["rule"] for v in violations] == ["deposit_not_above_total"]

        mine = await client.get("/api/proposals/mine", headers=contractor_headers())
        assert mine.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_duplicate_active_proposal(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        await ProposalFactory.create(db_session, project)

        response = await client.post(
            "/api/proposals",
            headers=contractor_headers(),
            json=proposal_payload(project.id),
        )

        assert response.status_code == 409
        assert response.json()["error"] == "ResourceAlreadyExistsError"

    @pytest.mark.asyncio
    async def test_project_not_open(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session, status=ProjectStatus.DRAFT)

        response = await client.post(
            "/api/proposals",
            headers=contractor_headers(),
            json=proposal_payload(project.id),
        )

        assert response.status_code == 400
        assert response.json()["details"]["violations"][0]["rule"] == "project_open"

    @pytest.mark.asyncio
    async def test_homeowner_cannot_submit(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)

        response = await client.post(
            "/api/proposals",
            headers=homeowner_headers(),
            json=proposal_payload(project.id),
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_submit_without_auth(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)

        response = await client.post("/api/proposals", json=proposal_payload(project.id))

        assert response.status_code == 401
        assert response.json()["error"] == "AuthenticationError"

    @pytest.mark.asyncio
    async def test_malformed_request(self, client: AsyncClient):
        """
        Test the request validation envelope.

        WHY: Schema errors share the ValidationError envelope with rule violations.
        """
        response = await client.post(
            "/api/proposals",
            headers=contractor_headers(),
            json={"project_id": 1, "title": "Missing everything else"},
        )

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "ValidationError"
        assert data["status_code"] == 400
        fields = {e["field"] for e in data["details"]["errors"]}
        assert "body.subtotal_amount" in fields


class TestProposalUpdate:
    """Integration tests for editing proposal content."""

    @pytest.mark.asyncio
    async def test_update_rederives_total(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project)

        response = await client.patch(
            f"/api/proposals/{proposal.id}",
            headers=contractor_headers(),
            json={"subtotal_amount": "2000.00"},
        )

        assert response.status_code == 200
        assert response.json()["total_amount"] == "2260.00"

    @pytest.mark.asyncio
    async def test_viewed_proposal_not_editable(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project, status=ProposalStatus.VIEWED)

        response = await client.patch(
            f"/api/proposals/{proposal.id}",
            headers=contractor_headers(),
            json={"title": "Changed"},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "ProposalNotEditableError"

    @pytest.mark.asyncio
    async def test_other_contractor_cannot_edit(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project)

        response = await client.patch(
            f"/api/proposals/{proposal.id}",
            headers=contractor_headers(SECOND_CONTRACTOR_ID),
            json={"title": "Changed"},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_explicit_null_rejected(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project)

        response = await client.patch(
            f"/api/proposals/{proposal.id}",
            headers=contractor_headers(),
            json={"expiry_date": None},
        )

        assert response.status_code == 400


class TestProposalTransitions:
    """Integration tests for status changes other than acceptance."""

    @pytest.mark.asyncio
    async def test_contractor_withdraws(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project)

        response = await client.post(
            f"/api/proposals/{proposal.id}/transition",
            headers=contractor_headers(),
            json={"status": "withdrawn"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "withdrawn"
        assert data["withdrawn_date"] is not None

    @pytest.mark.asyncio
    async def test_homeowner_cannot_withdraw(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project)

        response = await client.post(
            f"/api/proposals/{proposal.id}/transition",
            headers=homeowner_headers(),
            json={"status": "withdrawn"},
        )

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "InvalidStateTransitionError"
        assert data["details"]["current_state"] == "submitted"

    @pytest.mark.asyncio
    async def test_same_status_is_noop(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project)

        response = await client.post(
            f"/api/proposals/{proposal.id}/transition",
            headers=contractor_headers(),
            json={"status": "submitted"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "submitted"

    @pytest.mark.asyncio
    async def test_submit_draft(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project, status=ProposalStatus.DRAFT)

        response = await client.post(
            f"/api/proposals/{proposal.id}/transition",
            headers=contractor_headers(),
            json={"status": "submitted"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "submitted"

    @pytest.mark.asyncio
    async def test_terminal_status_is_final(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project, status=ProposalStatus.WITHDRAWN)

        response = await client.post(
            f"/api/proposals/{proposal.id}/transition",
            headers=contractor_headers(),
            json={"status": "submitted"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_reject_records_reason(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project)

        response = await client.post(
            f"/api/proposals/{proposal.id}/reject",
            headers=homeowner_headers(),
            json={"reason": "too_expensive", "notes": "Over budget"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "rejected"
        assert data["rejection_reason"] == "too_expensive"
        assert data["rejection_reason_notes"] == "Over budget"
        assert data["rejected_by"] == project.creator_id

    @pytest.mark.asyncio
    async def test_contractor_cannot_reject(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project)

        response = await client.post(
            f"/api/proposals/{proposal.id}/reject",
            headers=contractor_headers(),
            json={},
        )

        assert response.status_code == 400


class TestProposalAcceptance:
    """Integration tests for the acceptance cascade."""

    @pytest.mark.asyncio
    async def test_accept_rejects_siblings_and_awards(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        """
        Test accepting one of three proposals.

        WHY: A and B are submitted, C was withdrawn. Accepting A must
        reject B with reason "other", leave C alone and award the project.
        """
        project = await ProjectFactory.create(db_session)
        a = await ProposalFactory.create(db_session, project)
        b = await ProposalFactory.create(db_session, project, contractor_id=SECOND_CONTRACTOR_ID)
        c = await ProposalFactory.create(
            db_session,
            project,
            contractor_id=THIRD_CONTRACTOR_ID,
            status=ProposalStatus.WITHDRAWN,
        )

        response = await client.post(f"/api/proposals/{a.id}/accept", headers=homeowner_headers())

        assert response.status_code == 200
        data = response.json()
        assert data["operation_id"]
        assert data["accepted_proposal"]["status"] == "accepted"
        assert data["accepted_proposal"]["is_selected"] is True
        assert data["rejected_sibling_ids"] == [b.id]
        assert data["project"]["status"] == "awarded"

        b_response = await client.get(
            f"/api/proposals/{b.id}", headers=contractor_headers(SECOND_CONTRACTOR_ID)
        )
        assert b_response.json()["status"] == "rejected"
        assert b_response.json()["rejection_reason"] == "other"

        c_response = await client.get(
            f"/api/proposals/{c.id}", headers=contractor_headers(THIRD_CONTRACTOR_ID)
        )
        assert c_response.json()["status"] == "withdrawn"

    @pytest.mark.asyncio
    async def test_second_acceptance_refused(self, client: AsyncClient, db_session: AsyncSession):
        """
        Test accepting a sibling right after an acceptance.

        WHY: The project is awarded; nothing may change.
        """
        project = await ProjectFactory.create(db_session)
        a = await ProposalFactory.create(db_session, project)
        b = await ProposalFactory.create(db_session, project, contractor_id=SECOND_CONTRACTOR_ID)
        project_id, b_id = project.id, b.id

        first = await client.post(f"/api/proposals/{a.id}/accept", headers=homeowner_headers())
        assert first.status_code == 200

        second = await client.post(f"/api/proposals/{b_id}/accept", headers=homeowner_headers())

        assert second.status_code == 400
        assert second.json()["error"] == "InvalidStateTransitionError"

        report = await client.get(f"/api/projects/{project_id}/consistency", headers=homeowner_headers())
        assert report.json()["project_status"] == "awarded"
        assert report.json()["consistent"] is True
        assert report.json()["proposal_counts"] == {"accepted": 1, "rejected": 1}

    @pytest.mark.asyncio
    async def test_accept_through_transition(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project)

        response = await client.post(
            f"/api/proposals/{proposal.id}/transition",
            headers=homeowner_headers(),
            json={"status": "accepted"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "accepted"

    @pytest.mark.asyncio
    async def test_contractor_cannot_accept(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project)

        response = await client.post(f"/api/proposals/{proposal.id}/accept", headers=contractor_headers())

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_partial_failure_then_resume(self, client: AsyncClient, db_session: AsyncSession):
        """
        Test a cascade that fails at the award step.

        WHY: The caller must learn what was applied and be able to finish
        the cascade with the returned operation id.
        """
        project = await ProjectFactory.create(db_session)
        a = await ProposalFactory.create(db_session, project)
        b = await ProposalFactory.create(db_session, project, contractor_id=SECOND_CONTRACTOR_ID)
        project_id, a_id, b_id = project.id, a.id, b.id

        with patch.object(AcceptanceCoordinator, "_award_project", side_effect=RuntimeError("db down")):
            failed = await client.post(f"/api/proposals/{a_id}/accept", headers=homeowner_headers())

        assert failed.status_code == 500
        body = failed.json()
        assert body["error"] == "PartialAcceptanceFailure"
        details = body["details"]
        assert details["failed_step"] == "award_project"
        assert details["accepted_proposal_id"] == a_id
        assert details["rejected_proposal_ids"] == [b_id]
        assert details["project_awarded"] is False
        operation_id = details["operation_id"]

        report = await client.get(f"/api/projects/{project_id}/consistency", headers=homeowner_headers())
        assert report.json()["unfinished_operation_id"] == operation_id
        assert "accepted_without_award" in [i["code"] for i in report.json()["issues"]]

        resumed = await client.post(
            f"/api/proposals/acceptances/{operation_id}/resume",
            headers=homeowner_headers(),
        )

        assert resumed.status_code == 200
        assert resumed.json()["project"]["status"] == "awarded"
        assert resumed.json()["rejected_sibling_ids"] == [b_id]

    @pytest.mark.asyncio
    async def test_resume_unknown_operation(self, client: AsyncClient):
        response = await client.post(
            "/api/proposals/acceptances/does-not-exist/resume",
            headers=homeowner_headers(),
        )

        assert response.status_code == 404


class TestProposalReads:
    """Integration tests for reading and listing proposals."""

    @pytest.mark.asyncio
    async def test_homeowner_read_marks_viewed(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project)

        response = await client.get(f"/api/proposals/{proposal.id}", headers=homeowner_headers())

        assert response.status_code == 200
        assert response.json()["status"] == "viewed"
        assert response.json()["viewed_date"] is not None
        assert response.json()["is_editable"] is False

    @pytest.mark.asyncio
    async def test_contractor_read_does_not_mark_viewed(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project)

        response = await client.get(f"/api/proposals/{proposal.id}", headers=contractor_headers())

        assert response.json()["status"] == "submitted"

    @pytest.mark.asyncio
    async def test_stranger_cannot_read(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project)

        response = await client.get(
            f"/api/proposals/{proposal.id}",
            headers=contractor_headers(SECOND_CONTRACTOR_ID),
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_draft_hidden_from_homeowner(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project, status=ProposalStatus.DRAFT)

        response = await client.get(f"/api/proposals/{proposal.id}", headers=homeowner_headers())

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_mine_filters_status(self, client: AsyncClient, db_session: AsyncSession):
        first = await ProjectFactory.create(db_session)
        second = await ProjectFactory.create(db_session, title="Deck")
        await ProposalFactory.create(db_session, first)
        await ProposalFactory.create(db_session, second, status=ProposalStatus.WITHDRAWN)

        all_mine = await client.get("/api/proposals/mine", headers=contractor_headers())
        submitted = await client.get(
            "/api/proposals/mine",
            headers=contractor_headers(),
            params={"status": "submitted"},
        )

        assert all_mine.json()["total"] == 2
        assert submitted.json()["total"] == 1
        assert submitted.json()["items"][0]["project_id"] == first.id

    @pytest.mark.asyncio
    async def test_project_listing_scoped_to_caller(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        await ProposalFactory.create(db_session, project)
        await ProposalFactory.create(db_session, project, contractor_id=SECOND_CONTRACTOR_ID)
        await ProposalFactory.create(
            db_session, project, contractor_id=THIRD_CONTRACTOR_ID, status=ProposalStatus.DRAFT
        )

        homeowner_view = await client.get(f"/api/projects/{project.id}/proposals", headers=homeowner_headers())
        contractor_view = await client.get(f"/api/projects/{project.id}/proposals", headers=contractor_headers())

        assert homeowner_view.json()["total"] == 2
        assert contractor_view.json()["total"] == 1
        assert contractor_view.json()["items"][0]["contractor_id"] == CONTRACTOR_ID


class TestProposalDelete:
    """Integration tests for soft delete."""

    @pytest.mark.asyncio
    async def test_delete_withdrawn(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project, status=ProposalStatus.WITHDRAWN)

        response = await client.delete(f"/api/proposals/{proposal.id}", headers=contractor_headers())
        assert response.status_code == 204

        response = await client.get(f"/api/proposals/{proposal.id}", headers=contractor_headers())
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_cannot_delete_pending(self, client: AsyncClient, db_session: AsyncSession):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project)

        response = await client.delete(f"/api/proposals/{proposal.id}", headers=contractor_headers())

        assert response.status_code == 409


class TestProposalAttachments:
    """Integration tests for file attachments."""

    @pytest.mark.asyncio
    async def test_attach_file(self, client: AsyncClient, db_session: AsyncSession, file_store):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project)

        response = await client.post(
            f"/api/proposals/{proposal.id}/attachments",
            headers=contractor_headers(),
            files={"file": ("quote.pdf", b"%PDF-1.4 quote", "application/pdf")},
        )

        assert response.status_code == 201
        attached = response.json()["attached_files"]
        assert len(attached) == 1
        assert attached[0]["filename"] == "quote.pdf"
        assert attached[0]["mime_type"] == "application/pdf"
        assert attached[0]["size"] == len(b"%PDF-1.4 quote")
        assert attached[0]["url"].startswith("https://files.test/")
        assert file_store.objects[attached[0]["id"]] == b"%PDF-1.4 quote"

    @pytest.mark.asyncio
    async def test_cannot_attach_to_viewed(self, client: AsyncClient, db_session: AsyncSession, file_store):
        project = await ProjectFactory.create(db_session)
        proposal = await ProposalFactory.create(db_session, project, status=ProposalStatus.VIEWED)

        response = await client.post(
            f"/api/proposals/{proposal.id}/attachments",
            headers=contractor_headers(),
            files={"file": ("quote.pdf", b"data", "application/pdf")},
        )

        assert response.status_code == 409
        assert file_store.objects == {}
