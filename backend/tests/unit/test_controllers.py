"""Unit tests for the Connexion handlers: status codes and error bodies."""

from unittest.mock import patch

import pytest

from factories import make_graph

pytestmark = pytest.mark.unit

IDEAS = "grassroots.controllers.ideas_controller"
PLANS = "grassroots.controllers.strategic_plans_controller"
LOCATIONS = "grassroots.controllers.locations_controller"
POINTS = "grassroots.controllers.points_controller"

USER = {"id": "user-7", "user_type": "normal", "status": "active"}
ADMIN = {"id": "admin-1", "user_type": "admin", "status": "active"}
TOKEN = {"sub": "user-7"}


class TestIdeasController:
    def test_create_returns_201(self):
        with patch(f"{IDEAS}.require_user", return_value=USER), \
             patch(f"{IDEAS}.enforce_rate_limit") as limit, \
             patch(f"{IDEAS}.ideas.create_idea", return_value={"id": "i1"}) as create:
            from grassroots.controllers.ideas_controller import create_idea
            body, code = create_idea({"locationId": "mb-fr-1", "title": "T", "description": "D"},
                                     token_info=TOKEN)
        assert (body, code) == ({"id": "i1"}, 201)
        limit.assert_called_once_with("user-7", "idea_create")
        create.assert_called_once_with("user-7", "mb-fr-1", "T", "D", tags=None, amends_id=None)

    def test_unauthenticated(self, mock_db):
        with patch("grassroots.controllers.helpers.auth.db", mock_db):
            from grassroots.controllers.ideas_controller import create_idea
            body, code = create_idea({"title": "T"}, token_info=None)
        assert code == 401
        assert body["kind"] == "Unauthenticated"

    def test_rate_limited(self):
        from grassroots.controllers.helpers.errors import RateLimitedError
        with patch(f"{IDEAS}.require_user", return_value=USER), \
             patch(f"{IDEAS}.enforce_rate_limit", side_effect=RateLimitedError("slow down")):
            from grassroots.controllers.ideas_controller import support_idea
            body, code = support_idea("i1", token_info=TOKEN)
        assert code == 429

    def test_get_marks_supported_by_caller(self):
        with patch(f"{IDEAS}.ideas.get_idea", return_value={"id": "i1"}), \
             patch(f"{IDEAS}.has_supported", return_value=True):
            from grassroots.controllers.ideas_controller import get_idea
            body, code = get_idea("i1", token_info=TOKEN)
        assert code == 200
        assert body["supportedByMe"] is True

    def test_delete_returns_204(self):
        with patch(f"{IDEAS}.require_user", return_value=USER), \
             patch(f"{IDEAS}.ideas.remove_idea") as remove:
            from grassroots.controllers.ideas_controller import delete_idea
            assert delete_idea("i1", token_info=TOKEN) == ('', 204)
        remove.assert_called_once_with("i1", USER)

    def test_relate_new_pair_is_201(self):
        with patch(f"{IDEAS}.require_user", return_value=USER), \
             patch(f"{IDEAS}.enforce_rate_limit") as limit, \
             patch(f"{IDEAS}.ideas.relate_ideas", return_value=True) as relate:
            from grassroots.controllers.ideas_controller import relate_idea
            body, code = relate_idea("i1", {"relatedIdeaId": "i2"}, token_info=TOKEN)
        assert code == 201
        assert body == {"ideaId": "i1", "relatedIdeaId": "i2", "changed": True}
        limit.assert_called_once_with("user-7", "idea_relate")
        relate.assert_called_once_with("i1", "i2", "user-7")

    def test_relate_existing_pair_is_200(self):
        with patch(f"{IDEAS}.require_user", return_value=USER), \
             patch(f"{IDEAS}.enforce_rate_limit"), \
             patch(f"{IDEAS}.ideas.relate_ideas", return_value=False):
            from grassroots.controllers.ideas_controller import relate_idea
            body, code = relate_idea("i1", {"relatedIdeaId": "i2"}, token_info=TOKEN)
        assert code == 200
        assert body["changed"] is False

    def test_support_before_posting_is_400(self):
        from grassroots.controllers.helpers.errors import ValidationError
        with patch(f"{IDEAS}.require_user", return_value=USER), \
             patch(f"{IDEAS}.enforce_rate_limit"), \
             patch(f"{IDEAS}.record_support",
                   side_effect=ValidationError("Please add at least one idea before supporting others.")):
            from grassroots.controllers.ideas_controller import support_idea
            body, code = support_idea("i1", token_info=TOKEN)
        assert code == 400
        assert "at least one idea" in body["message"]

    def test_amendments_of_unknown_idea(self):
        from grassroots.controllers.helpers.errors import NotFoundError
        with patch(f"{IDEAS}.ideas.list_amendments", side_effect=NotFoundError("Idea not found")):
            from grassroots.controllers.ideas_controller import get_idea_amendments
            body, code = get_idea_amendments("nope")
        assert code == 404

    def test_store_error_hides_details(self):
        from grassroots.controllers.helpers.errors import TransientStoreError
        with patch(f"{IDEAS}.ideas.get_idea", side_effect=TransientStoreError("pg: timeout on host db-3")):
            from grassroots.controllers.ideas_controller import get_idea
            body, code = get_idea("i1")
        assert code == 503
        assert "db-3" not in body["message"]


class TestStrategicPlansController:
    def test_start_plan(self):
        with patch(f"{PLANS}.require_user", return_value=USER), \
             patch(f"{PLANS}.enforce_rate_limit") as limit, \
             patch(f"{PLANS}.plans.start_plan", return_value={"id": "plan-1"}) as start:
            from grassroots.controllers.strategic_plans_controller import start_plan
            body, code = start_plan("mb-fr-1", {"year": 2026}, token_info=TOKEN)
        assert code == 201
        limit.assert_called_once_with("user-7", "plan_start")
        start.assert_called_once_with("mb-fr-1", USER, year=2026, title=None, vision=None)

    def test_duplicate_plan_is_409(self):
        from grassroots.controllers.helpers.errors import ConflictError
        with patch(f"{PLANS}.require_user", return_value=USER), \
             patch(f"{PLANS}.enforce_rate_limit"), \
             patch(f"{PLANS}.plans.start_plan", side_effect=ConflictError("already active")):
            from grassroots.controllers.strategic_plans_controller import start_plan
            body, code = start_plan("mb-fr-1", token_info=TOKEN)
        assert code == 409
        assert body["kind"] == "Conflict"

    def test_no_current_plan_is_404(self):
        with patch(f"{PLANS}.plans.get_current_plan", return_value=None):
            from grassroots.controllers.strategic_plans_controller import get_current_plan
            body, code = get_current_plan("mb-fr-1")
        assert code == 404
        assert body["kind"] == "NotFound"

    def test_contribution_in_wrong_stage(self):
        from grassroots.controllers.helpers.errors import InvalidStageError
        with patch(f"{PLANS}.require_user", return_value=USER), \
             patch(f"{PLANS}.enforce_rate_limit"), \
             patch(f"{PLANS}.plans.add_issue", side_effect=InvalidStageError("closed")):
            from grassroots.controllers.strategic_plans_controller import add_issue
            body, code = add_issue("plan-1", {"title": "T"}, token_info=TOKEN)
        assert code == 409
        assert body["kind"] == "InvalidStage"

    def test_comment_passes_parent(self):
        with patch(f"{PLANS}.require_user", return_value=USER), \
             patch(f"{PLANS}.enforce_rate_limit") as limit, \
             patch(f"{PLANS}.plans.add_comment", return_value={"id": "c-2"}) as add:
            from grassroots.controllers.strategic_plans_controller import add_comment
            add_comment("plan-1", {"body": "Agreed", "parentId": "c-1"}, token_info=TOKEN)
        limit.assert_called_once_with("user-7", "plan_contribution")
        add.assert_called_once_with("plan-1", "user-7", "Agreed", parent_id="c-1")

    def test_override_requires_admin(self, mock_db):
        mock_db.set_return(USER)
        with patch("grassroots.controllers.helpers.auth.db", mock_db), \
             patch(f"{PLANS}.plans.override_stage") as override:
            from grassroots.controllers.strategic_plans_controller import override_plan_stage
            body, code = override_plan_stage("plan-1", {"stage": "draft"}, token_info=TOKEN)
        assert code == 403
        override.assert_not_called()

    def test_admin_override(self):
        with patch(f"{PLANS}.require_user", return_value=ADMIN) as require, \
             patch(f"{PLANS}.plans.override_stage", return_value={"stage": "draft"}) as override:
            from grassroots.controllers.strategic_plans_controller import override_plan_stage
            body, code = override_plan_stage("plan-1", {"stage": "draft", "reason": "restart"},
                                             token_info={"sub": "admin-1"})
        assert code == 200
        require.assert_called_once_with({"sub": "admin-1"}, "admin")
        override.assert_called_once_with("plan-1", "draft", ADMIN, reason="restart")

    def test_admin_edits_plan(self):
        with patch(f"{PLANS}.require_user", return_value=ADMIN) as require, \
             patch(f"{PLANS}.plans.update_plan", return_value={"title": "New"}) as update:
            from grassroots.controllers.strategic_plans_controller import update_plan
            body, code = update_plan("plan-1", {"title": "New"}, token_info={"sub": "admin-1"})
        assert code == 200
        require.assert_called_once_with({"sub": "admin-1"}, "admin")
        update.assert_called_once_with("plan-1", ADMIN, title="New", vision=None)


class TestLocationsController:
    def test_location_with_ancestors_and_children(self):
        graph = make_graph()
        with patch(f"{LOCATIONS}.resolve_location", return_value=graph.get("ca-mb")), \
             patch(f"{LOCATIONS}.get_location_graph", return_value=graph):
            from grassroots.controllers.locations_controller import get_location
            body, code = get_location("province", "ca-mb")
        assert code == 200
        assert [a["id"] for a in body["ancestors"]] == ["ca"]
        assert "mb-grp-1" in {c["id"] for c in body["children"]}

    def test_unknown_location(self):
        from grassroots.controllers.helpers.errors import NotFoundError
        with patch(f"{LOCATIONS}.resolve_location", side_effect=NotFoundError("Location not found")):
            from grassroots.controllers.locations_controller import get_location_ideas
            body, code = get_location_ideas("town", "nowhere")
        assert code == 404
        assert body["message"] == "Location not found"


class TestPointsController:
    def test_my_points_allows_guests(self):
        guest = {"id": "g-1", "user_type": "guest", "status": "active"}
        with patch(f"{POINTS}.require_user", return_value=guest) as require, \
             patch(f"{POINTS}.points_summary", return_value={"userId": "g-1"}):
            from grassroots.controllers.points_controller import get_my_points
            body, code = get_my_points(token_info={"sub": "g-1"})
        assert code == 200
        require.assert_called_once_with({"sub": "g-1"}, "guest")

    def test_badges_are_listed_without_granting(self):
        with patch(f"{POINTS}.list_badges", return_value={"badges": []}) as listed, \
             patch("grassroots.controllers.helpers.points.evaluate_badges") as evaluate:
            from grassroots.controllers.points_controller import get_user_badges
            body, code = get_user_badges("u-3")
        assert (body, code) == ({"badges": []}, 200)
        listed.assert_called_once_with("u-3")
        evaluate.assert_not_called()
