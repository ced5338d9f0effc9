"""
HTTP-level tests for the SkillTrack API.
"""
import pytest


def register(client, learner_id="learner-1", email="ada@example.com"):
    return client.post("/learner/register", json={"learner_id": learner_id, "name": "Ada", "email": email})


@pytest.fixture
def learner(client):
    assert register(client).status_code == 200
    return "learner-1"


class TestSystem:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["database"] == "ok"

    def test_root(self, client):
        assert client.get("/").json()["service"] == "SkillTrack"


class TestRegistration:
    def test_register(self, client):
        response = register(client)
        assert response.status_code == 200
        assert response.json() == {"learner_id": "learner-1", "name": "Ada", "registered": True}

    def test_duplicate_id(self, client, learner):
        assert register(client, email="other@example.com").status_code == 409

    def test_duplicate_email(self, client, learner):
        assert register(client, learner_id="learner-2", email="ADA@example.com").status_code == 409

    def test_generated_id(self, client):
        response = client.post("/learner/register", json={"name": "Grace", "email": "grace@example.com"})
        assert response.status_code == 200
        assert response.json()["learner_id"]

    def test_invalid_email(self, client):
        response = client.post("/learner/register", json={"name": "Grace", "email": "not-an-email"})
        assert response.status_code == 422


class TestSubmit:
    def test_positive_submission(self, client, learner):
        response = client.post("/submit", json={
            "learner_id": learner,
            "detections": [{"topic_slug": "array-map", "is_positive": True, "is_idiomatic": True}],
        })
        assert response.status_code == 200
        body = response.json()
        [change] = body["skill_changes"]
        assert change["topic_slug"] == "array-map"
        assert change["rating_before"] == 1500
        assert change["change"] > 0
        assert body["new_unlocks"] == []
        assert body["weak_prerequisite"] is None

    def test_failure_reports_weak_prerequisite(self, client, learner):
        response = client.post("/submit", json={
            "learner_id": learner,
            "detections": [{"topic_slug": "array-reduce", "is_negative": True}],
        })
        body = response.json()
        assert body["skill_changes"][0]["error_type"] == "MISTAKE"
        assert body["skill_changes"][0]["error_description"]
        assert body["weak_prerequisite"]["slug"] == "array-map"
        assert body["weak_prerequisite"]["rating"] is None

    def test_unknown_topic_is_skipped(self, client, learner):
        body = client.post("/submit", json={
            "learner_id": learner,
            "detections": [{"topic_slug": "no-such-topic", "is_positive": True}],
        }).json()
        assert body["skill_changes"] == []
        assert body["skipped_topics"] == ["no-such-topic"]

    def test_unknown_learner(self, client):
        response = client.post("/submit", json={
            "learner_id": "ghost",
            "detections": [{"topic_slug": "array-map", "is_positive": True}],
        })
        assert response.status_code == 404

    def test_external_score_out_of_range(self, client, learner):
        response = client.post("/submit", json={
            "learner_id": learner,
            "detections": [{"topic_slug": "array-map", "is_positive": True}],
            "external_scores": [{"slug": "array-map", "score": 1.5}],
        })
        assert response.status_code == 422

    def test_external_score_applied(self, client, learner):
        client.post("/submit", json={
            "learner_id": learner,
            "detections": [{"topic_slug": "array-map", "is_positive": True}],
            "external_scores": [{"slug": "array-map", "score": 0.9, "reason": "clean chain"}],
        })
        [entry] = client.get(f"/learner/{learner}/history").json()["entries"]
        assert entry["score"] == 0.9


class TestLearnerViews:
    def _submit(self, client, learner, slug="array-map"):
        return client.post("/submit", json={
            "learner_id": learner,
            "detections": [{"topic_slug": slug, "is_positive": True, "is_idiomatic": True}],
        })

    def test_skills(self, client, learner):
        self._submit(client, learner)
        body = client.get(f"/learner/{learner}/skills").json()
        [skill] = body["skills"]
        assert skill["topic_slug"] == "array-map"
        assert skill["times_encountered"] == 1
        assert len(skill["stars_display"]) == 5
        assert body["overall_rating"] == skill["rating"]

    def test_skills_layer_filter(self, client, learner):
        self._submit(client, learner)
        body = client.get(f"/learner/{learner}/skills", params={"layer": "PATTERNS"}).json()
        assert body["skills"] == []

    def test_stuck(self, client, learner):
        body = client.get(f"/learner/{learner}/stuck").json()
        assert body["stuck_count"] == 0
        assert body["most_urgent"] is None

    def test_progression(self, client, learner):
        self._submit(client, learner)
        body = client.get(f"/learner/{learner}/progression").json()
        assert body["current_layer"] == "FUNDAMENTALS"
        assert body["next_unlock"] == "INTERMEDIATE"
        assert body["intermediate"]["submissions"]["current"] == 1
        assert body["total_reviews"] == 1
        assert [layer["layer"] for layer in body["layers"]] == ["FUNDAMENTALS", "INTERMEDIATE", "PATTERNS"]

    def test_history(self, client, learner):
        self._submit(client, learner)
        self._submit(client, learner, slug="array-filter")
        body = client.get(f"/learner/{learner}/history", params={"topic": "array-filter"}).json()
        assert body["total"] == 1
        assert body["entries"][0]["topic_slug"] == "array-filter"

    def test_unknown_learner(self, client):
        assert client.get("/learner/ghost/skills").status_code == 404
        assert client.get("/learner/ghost/progression").status_code == 404


class TestTopics:
    def test_list(self, client):
        body = client.get("/topics").json()
        assert body["total"] == 44
        assert body["topics"][0]["layer"] == "FUNDAMENTALS"

    def test_layer_filter(self, client):
        body = client.get("/topics", params={"layer": "PATTERNS"}).json()
        assert body["total"] == 9

    def test_unknown_layer(self, client):
        assert client.get("/topics", params={"layer": "ADVANCED"}).status_code == 422

    def test_prerequisite_tree(self, client):
        body = client.get("/topics/fetch-error-checking/prerequisites").json()
        children = [c["slug"] for c in body["tree"]["children"]]
        assert set(children) == {"async-await-basics", "try-catch"}

    def test_prerequisite_tree_depth(self, client):
        body = client.get("/topics/jsx-keys/prerequisites", params={"max_depth": 1}).json()
        [child] = body["tree"]["children"]
        assert child["slug"] == "jsx-list-rendering"
        assert child["children"] == []

    def test_unknown_topic(self, client):
        assert client.get("/topics/no-such-topic/prerequisites").status_code == 404
