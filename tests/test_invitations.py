"""ActivityInvitationService: direct invitations and invitee responses."""

import pytest

from playconnect.core.activities import to_ref
from playconnect.core.connection_requests import ConnectionRequestService
from playconnect.core.connections import is_connected
from playconnect.core.errors import (
    ActivityNotFound,
    DuplicateInvitation,
    IdentityResolutionFailure,
    InvalidState,
    InvitationNotFound,
    NotAuthorised,
    SelfConnection,
)
from playconnect.core.invitations import ActivityInvitationService
from playconnect.core.participants import ParticipantStatusResolver
from playconnect.core.pending_invitations import PendingInvitationLedger
from playconnect.models.activity_invitation import ActivityInvitation
from playconnect.models.pending_activity_invitation import PendingActivityInvitation


@pytest.fixture
def host(make_parent):
    return make_parent("Hana", children=("Hugo",))


@pytest.fixture
def guest(make_parent):
    return make_parent("Pat", children=("Cleo",))


@pytest.fixture
def activity(host, make_activity):
    return make_activity(host, name="Zoo trip")


@pytest.fixture
def service(db):
    return ActivityInvitationService(db)


def connect(db, requester, target, target_child=None):
    service = ConnectionRequestService(db)
    request = service.submit_request(
        requester,
        requester.children[0].uuid,
        target,
        target_child_uuid=target_child.uuid if target_child else None,
    )
    return service.respond(request.uuid, "accept", target)


class TestHostSide:
    def test_invite(self, service, host, guest, activity):
        invitation = service.invite(activity.uuid, host, guest.children[0].uuid, "Come along")

        assert invitation.status == "pending"
        assert invitation.invited_parent_id == guest.id
        assert invitation.inviter_parent_id == host.id
        assert invitation.message == "Come along"

    def test_invite_by_parent_uuid(self, service, host, guest, activity):
        invitation = service.invite(activity.uuid, host, parent_uuid=guest.uuid)

        assert invitation.invited_child_id == guest.children[0].id
        assert invitation.invited_parent_id == guest.id

    def test_invite_by_parent_with_several_children(self, service, host, activity, make_parent):
        twins = make_parent("Tess", children=("Tom", "Tia"))
        with pytest.raises(IdentityResolutionFailure):
            service.invite(activity.uuid, host, parent_uuid=twins.uuid)

    def test_invite_needs_a_target(self, service, host, activity):
        with pytest.raises(IdentityResolutionFailure):
            service.invite(activity.uuid, host)

    def test_invite_twice_conflicts(self, service, host, guest, activity):
        service.invite(activity.uuid, host, guest.children[0].uuid)
        with pytest.raises(DuplicateInvitation):
            service.invite(activity.uuid, host, guest.children[0].uuid)

    def test_reinvite_after_withdraw(self, service, host, guest, activity):
        first = service.invite(activity.uuid, host, guest.children[0].uuid)
        service.withdraw(activity.uuid, first.uuid, host)

        second = service.invite(activity.uuid, host, guest.children[0].uuid)

        assert second.id != first.id
        assert second.status == "pending"

    def test_invite_clears_ledger_rows(self, db, service, host, guest, activity):
        PendingInvitationLedger(db).add_pending(
            to_ref(activity), f"pending-child-{guest.children[0].uuid}"
        )
        db.commit()

        service.invite(activity.uuid, host, guest.children[0].uuid)

        assert db.query(PendingActivityInvitation).count() == 0

    def test_only_host_invites(self, service, guest, activity, make_parent):
        other = make_parent("Oli", children=("Ola",))
        with pytest.raises(NotAuthorised):
            service.invite(activity.uuid, other, guest.children[0].uuid)

    def test_host_cannot_invite_own_child(self, service, host, activity):
        with pytest.raises(SelfConnection):
            service.invite(activity.uuid, host, host.children[0].uuid)

    def test_unknown_activity(self, service, host, guest):
        with pytest.raises(ActivityNotFound):
            service.invite("missing", host, guest.children[0].uuid)

    def test_withdraw_checks_activity(self, service, host, guest, activity, make_activity):
        invitation = service.invite(activity.uuid, host, guest.children[0].uuid)
        other = make_activity(host, name="Other")

        with pytest.raises(InvitationNotFound):
            service.withdraw(other.uuid, invitation.uuid, host)

    def test_mark_status_viewed(self, service, host, guest, activity):
        invitation = service.invite(activity.uuid, host, guest.children[0].uuid)
        service.respond(invitation.uuid, "accept", guest)

        seen = service.mark_status_viewed(invitation.uuid, host)
        assert seen.status_viewed_at is not None

        with pytest.raises(NotAuthorised):
            service.mark_status_viewed(invitation.uuid, guest)


class TestInviteeSide:
    def test_accept_does_not_connect(self, db, service, host, guest, activity):
        invitation = service.invite(activity.uuid, host, guest.children[0].uuid)

        accepted = service.respond(invitation.uuid, "accept", guest)

        assert accepted.status == "accepted"
        assert not is_connected(db, host.children[0].id, guest.children[0].id)

    def test_accepted_can_be_declined_but_not_back(self, service, host, guest, activity):
        invitation = service.invite(activity.uuid, host, guest.children[0].uuid)
        service.respond(invitation.uuid, "accept", guest)

        declined = service.respond(invitation.uuid, "reject", guest)
        assert declined.status == "rejected"
        assert declined.status_viewed_at is None

        with pytest.raises(InvalidState):
            service.respond(invitation.uuid, "accept", guest)

    def test_repeat_response_is_silent(self, service, host, guest, activity):
        invitation = service.invite(activity.uuid, host, guest.children[0].uuid)
        service.respond(invitation.uuid, "accept", guest)

        assert service.respond(invitation.uuid, "accept", guest).status == "accepted"

    def test_withdrawn_cannot_be_answered(self, service, host, guest, activity):
        invitation = service.invite(activity.uuid, host, guest.children[0].uuid)
        service.withdraw(activity.uuid, invitation.uuid, host)

        with pytest.raises(InvalidState):
            service.respond(invitation.uuid, "accept", guest)

    def test_only_invited_parent_responds(self, service, host, guest, activity):
        invitation = service.invite(activity.uuid, host, guest.children[0].uuid)
        with pytest.raises(NotAuthorised):
            service.respond(invitation.uuid, "accept", host)

    def test_received_hides_viewed(self, service, host, guest, activity):
        invitation = service.invite(activity.uuid, host, guest.children[0].uuid)
        assert [i.uuid for i in service.received(guest)] == [invitation.uuid]

        service.mark_viewed(invitation.uuid, guest)

        assert service.received(guest) == []
        assert [i.uuid for i in service.received(guest, include_viewed=True)] == [invitation.uuid]

    def test_mark_viewed_by_stranger(self, service, host, guest, activity):
        invitation = service.invite(activity.uuid, host, guest.children[0].uuid)
        with pytest.raises(InvitationNotFound):
            service.mark_viewed(invitation.uuid, host)


class TestPendingForConnectedInvitees:
    def test_connected_child_is_invited_at_once(self, db, service, host, guest, make_activity):
        """Host and guest are already connected when the pending row is added."""
        activity = make_activity(host, name="Zoo trip", auto_notify=False)
        cleo = guest.children[0]
        connect(db, host, guest)

        result = service.add_pending(activity.uuid, host, [f"pending-child-{cleo.uuid}"], "Zoo?")

        assert result.pending == []
        (invitation,) = result.invitations
        assert invitation.invited_child_id == cleo.id
        assert invitation.message == "Zoo?"
        assert db.query(PendingActivityInvitation).count() == 0

        entries = ParticipantStatusResolver(db).resolve(to_ref(activity))
        assert [(e.child_name, e.status) for e in entries] == [("Cleo", "invited")]

    def test_parent_key_goes_to_the_connected_child(self, db, service, host, make_parent, make_activity):
        activity = make_activity(host, auto_notify=False)
        twins = make_parent("Tess", children=("Tom", "Tia"))
        tia = twins.children[1]
        connect(db, host, twins, target_child=tia)

        result = service.add_pending(activity.uuid, host, [f"pending-{twins.uuid}"])

        assert [i.invited_child_id for i in result.invitations] == [tia.id]
        assert db.query(PendingActivityInvitation).count() == 0

    def test_existing_invitation_is_not_duplicated(self, db, service, host, guest, make_activity):
        activity = make_activity(host, auto_notify=False)
        cleo = guest.children[0]
        connect(db, host, guest)
        service.invite(activity.uuid, host, cleo.uuid)

        result = service.add_pending(activity.uuid, host, [f"pending-child-{cleo.uuid}"])

        assert result.pending == []
        assert result.invitations == []
        assert db.query(ActivityInvitation).count() == 1
        assert db.query(PendingActivityInvitation).count() == 0

    def test_unconnected_invitee_keeps_waiting(self, db, service, host, guest, make_activity):
        activity = make_activity(host, auto_notify=False)
        cleo = guest.children[0]

        result = service.add_pending(activity.uuid, host, [f"pending-child-{cleo.uuid}"])

        assert [r.pending_connection_key for r in result.pending] == [f"pending-child-{cleo.uuid}"]
        assert result.invitations == []
        assert db.query(ActivityInvitation).count() == 0
