"""ParticipantStatusResolver: one entry per child, connected only when active."""

import pytest

from playconnect.core.activities import to_ref
from playconnect.core.connection_requests import ConnectionRequestService
from playconnect.core.connections import remove_connection
from playconnect.core.invitations import ActivityInvitationService
from playconnect.core.participants import ParticipantStatusResolver
from playconnect.core.pending_invitations import PendingInvitationLedger
from playconnect.core.skeleton_registry import SkeletonRegistry
from playconnect.models.activity_invitation import ActivityInvitation


@pytest.fixture
def host(make_parent):
    return make_parent("Hana", children=("Hugo",))


@pytest.fixture
def activity(host, make_activity):
    return make_activity(host, name="Zoo trip", auto_notify=False)


def add_pending(db, activity, key):
    PendingInvitationLedger(db).add_pending(to_ref(activity), key)
    db.commit()


def participants(db, activity):
    return ParticipantStatusResolver(db).resolve(to_ref(activity))


def by_child(entries):
    return {e.child_uuid: e for e in entries}


class TestStatuses:
    def test_pending_request_is_not_connected(self, db, host, activity, make_parent):
        pat = make_parent("Pat", children=("Cleo",))
        add_pending(db, activity, f"pending-child-{pat.children[0].uuid}")
        ConnectionRequestService(db).submit_request(host, host.children[0].uuid, pat)

        (entry,) = participants(db, activity)

        assert entry.status == "pending_connection"
        assert entry.invitation_type == "pending"
        assert entry.child_name == "Cleo"

    def test_removed_connection_is_not_connected(self, db, host, activity, make_parent):
        pat = make_parent("Pat", children=("Cleo",))
        service = ConnectionRequestService(db)
        request = service.submit_request(host, host.children[0].uuid, pat)
        conn = service.respond(request.uuid, "accept", pat)
        remove_connection(db, conn.uuid, host)
        add_pending(db, activity, f"pending-child-{pat.children[0].uuid}")

        (entry,) = participants(db, activity)

        assert entry.status == "pending_connection"

    def test_ledger_row_with_active_connection_is_connected(self, db, host, activity, make_parent):
        pat = make_parent("Pat", children=("Cleo",))
        service = ConnectionRequestService(db)
        request = service.submit_request(host, host.children[0].uuid, pat)
        service.respond(request.uuid, "accept", pat)
        # Added after the connection, so nothing converts it
        add_pending(db, activity, f"pending-child-{pat.children[0].uuid}")

        (entry,) = participants(db, activity)

        assert entry.status == "connected"

    @pytest.mark.parametrize(
        "invitation_status, shown",
        [("pending", "invited"), ("accepted", "accepted"), ("rejected", "declined")],
    )
    def test_real_invitation_statuses(self, db, host, activity, make_parent, invitation_status, shown):
        pat = make_parent("Pat", children=("Cleo",))
        db.add(
            ActivityInvitation(
                activity_id=activity.id,
                inviter_parent_id=host.id,
                invited_parent_id=pat.id,
                invited_child_id=pat.children[0].id,
                status=invitation_status,
            )
        )
        db.commit()

        (entry,) = participants(db, activity)

        assert entry.status == shown
        assert entry.invitation_type == "sent"

    def test_withdrawn_invitation_is_hidden(self, db, host, activity, make_parent):
        pat = make_parent("Pat", children=("Cleo",))
        service = ActivityInvitationService(db)
        invitation = service.invite(activity.uuid, host, pat.children[0].uuid)
        service.withdraw(activity.uuid, invitation.uuid, host)

        assert participants(db, activity) == []

    def test_parent_row_connected_through_any_child(self, db, host, activity, make_parent):
        pat = make_parent("Pat", children=("Cleo", "Dani"))
        add_pending(db, activity, f"pending-{pat.uuid}")
        service = ConnectionRequestService(db)
        request = service.submit_request(
            host, host.children[0].uuid, pat, target_child_uuid=pat.children[1].uuid
        )
        service.respond(request.uuid, "accept", pat)

        # The accepted connection converted the parent row into Dani's invitation
        (entry,) = participants(db, activity)
        assert entry.child_name == "Dani"
        assert entry.status == "invited"

    def test_skeleton_rows(self, db, host, activity):
        result = SkeletonRegistry(db).create_skeleton_request(
            host, host.children[0].uuid, "sam@example.com", "email", "Sky"
        )
        add_pending(db, activity, f"pending-child-{result.skeleton_child.uuid}")

        (entry,) = participants(db, activity)

        assert entry.status == "pending_connection"
        assert entry.target_kind == "skeleton_child"
        assert entry.child_name == "Sky"


class TestNoDuplicates:
    def test_real_invitation_beats_ledger_row(self, db, host, activity, make_parent):
        pat = make_parent("Pat", children=("Cleo",))
        cleo = pat.children[0]
        ActivityInvitationService(db).invite(activity.uuid, host, cleo.uuid)
        add_pending(db, activity, f"pending-child-{cleo.uuid}")

        entries = participants(db, activity)

        assert len(entries) == 1
        assert entries[0].invitation_type == "sent"
        assert entries[0].status == "invited"

    @pytest.mark.parametrize("child_first", [True, False])
    def test_parent_and_child_keys_show_child_once(self, db, activity, make_parent, child_first):
        pat = make_parent("Pat", children=("Cleo", "Dani"))
        cleo = pat.children[0]
        keys = [f"pending-child-{cleo.uuid}", f"pending-{pat.uuid}"]
        for key in keys if child_first else reversed(keys):
            add_pending(db, activity, key)

        entries = participants(db, activity)

        assert [e.child_uuid for e in entries] == [cleo.uuid]

    def test_parent_row_hidden_behind_invited_child(self, db, host, activity, make_parent):
        pat = make_parent("Pat", children=("Cleo", "Dani"))
        add_pending(db, activity, f"pending-{pat.uuid}")
        # Inject an invitation directly so the ledger row survives
        db.add(
            ActivityInvitation(
                activity_id=activity.id,
                inviter_parent_id=host.id,
                invited_parent_id=pat.id,
                invited_child_id=pat.children[1].id,
                status="pending",
            )
        )
        db.commit()

        entries = participants(db, activity)

        assert len(entries) == 1
        assert entries[0].child_name == "Dani"

    def test_many_invitees(self, db, host, activity, make_parent):
        families = [make_parent(f"P{i}", children=(f"C{i}",)) for i in range(4)]
        service = ActivityInvitationService(db)
        service.invite(activity.uuid, host, families[0].children[0].uuid)
        for family in families[1:]:
            add_pending(db, activity, f"pending-{family.uuid}")

        entries = participants(db, activity)

        assert len(entries) == 4
        assert len(by_child(entries)) == 4
