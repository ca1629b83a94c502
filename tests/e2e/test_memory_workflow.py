"""End-to-end memory workflows over the in-memory SQLite backend."""

import json

import pytest


def current_memory(request):
    """Map memory text to the temporary id the model was shown."""
    prompt = request.messages[-1]["content"]
    if "Current memory:\n```\n" not in prompt:
        return {}
    block = prompt.split("Current memory:\n```\n", 1)[1].split("\n```", 1)[0]
    return {item["text"]: item["id"] for item in json.loads(block)}


class TestPreferenceLifecycle:
    """Store a preference, find it by meaning and category, then remove it."""

    @pytest.mark.asyncio
    async def test_add_search_delete(self, memory):
        added = await memory.add(
            "User prefers concise English answers",
            user_id="alice",
            metadata={"category": "preference"},
            infer=False,
        )
        await memory.add("User owns a red bicycle", user_id="alice", infer=False)
        memory_id = added["results"][0]["id"]

        found = await memory.search("concise English", user_id="alice", filters={"category": "preference"})

        assert [hit["id"] for hit in found["results"]] == [memory_id]
        assert found["results"][0]["metadata"]["category"] == "preference"

        assert await memory.delete(memory_id, user_id="alice")
        assert await memory.get(memory_id, user_id="alice") is None
        assert (await memory.search("concise English", user_id="alice",
                                    filters={"category": "preference"}))["results"] == []

    @pytest.mark.asyncio
    async def test_agents_share_user_memories_only_when_unscoped(self, memory):
        await memory.add("User likes green tea", user_id="alice", agent_id="travel", infer=False)
        await memory.add("User likes black coffee", user_id="alice", agent_id="cooking", infer=False)

        travel = await memory.search("likes", user_id="alice", agent_id="travel")
        everyone = await memory.search("likes", user_id="alice")

        assert [hit["memory"] for hit in travel["results"]] == ["User likes green tea"]
        assert len(everyone["results"]) == 2


class TestInferredMerge:
    """The model decides how new facts merge with what is already stored."""

    @pytest.mark.asyncio
    async def test_update_delete_add_and_ignore(self, memory, scripted_llm):
        tea = (await memory.add("User likes green tea", user_id="alice", infer=False))["results"][0]["id"]
        paris = (await memory.add("User lives in Paris", user_id="alice", infer=False))["results"][0]["id"]

        def decide(request):
            temp = current_memory(request)
            return {"memory": [
                {"id": temp["User likes green tea"], "text": "User likes black tea", "event": "UPDATE",
                 "old_memory": "User likes green tea"},
                {"id": temp["User lives in Paris"], "text": "User lives in Paris", "event": "DELETE"},
                {"id": "new", "text": "User has a dog", "event": "ADD"},
                {"id": "new", "text": "User likes tea", "event": "NONE"},
            ]}

        scripted_llm.queue({"facts": ["User likes black tea", "User moved to Berlin", "User has a dog"]})
        scripted_llm.queue(decide)

        response = await memory.add(
            [
                {"role": "system", "content": "You are a helpful assistant"},
                {"role": "user", "content": "I switched to black tea, moved to Berlin and got a dog"},
            ],
            user_id="alice",
        )

        events = [(r["event"], r["memory"]) for r in response["results"]]
        assert events == [
            ("UPDATE", "User likes black tea"),
            ("DELETE", "User lives in Paris"),
            ("ADD", "User has a dog"),
        ]
        assert response["results"][0]["id"] == tea
        assert response["results"][0]["previous_memory"] == "User likes green tea"

        remaining = sorted(r["memory"] for r in (await memory.get_all(user_id="alice"))["results"])
        assert remaining == ["User has a dog", "User likes black tea"]
        assert [e["event"] for e in await memory.history(tea)] == ["ADD", "UPDATE"]
        assert [e["event"] for e in await memory.history(paris)] == ["ADD", "DELETE"]
        assert "You are a helpful assistant" not in scripted_llm.requests[0].messages[1]["content"]

    @pytest.mark.asyncio
    async def test_hallucinated_ids_are_ignored(self, memory, scripted_llm):
        tea = (await memory.add("User likes green tea", user_id="alice", infer=False))["results"][0]["id"]
        scripted_llm.queue({"facts": ["User likes black tea"]})
        scripted_llm.queue({"memory": [
            {"id": "7", "text": "User likes black tea", "event": "UPDATE"},
            {"id": "424242424242", "text": "", "event": "DELETE"},
            {"text": "orphan", "event": "UPDATE"},
            "not a decision",
        ]})

        response = await memory.add("I like black tea now", user_id="alice")

        assert response["results"] == []
        stored = await memory.get(tea, user_id="alice")
        assert stored["memory"] == "User likes green tea"
        assert [e["event"] for e in await memory.history(tea)] == ["ADD"]

    @pytest.mark.asyncio
    async def test_other_users_memories_are_never_candidates(self, memory, scripted_llm):
        bob = (await memory.add("User likes green tea", user_id="bob", infer=False))["results"][0]["id"]
        scripted_llm.queue({"facts": ["User likes green tea"]})
        scripted_llm.queue({"memory": [{"id": bob, "text": "User likes black tea", "event": "UPDATE"}]})

        response = await memory.add("I like green tea", user_id="alice")

        assert "Current memory is empty." in scripted_llm.requests[1].messages[0]["content"]
        assert response["results"] == []
        assert (await memory.get(bob, user_id="bob"))["memory"] == "User likes green tea"

    @pytest.mark.asyncio
    async def test_model_failure_surfaces(self, memory, scripted_llm):
        from powermem_core.llm import LLMProviderError

        scripted_llm.fail_with = "provider unreachable"

        with pytest.raises(LLMProviderError):
            await memory.add("I like tea", user_id="alice")
        assert (await memory.get_all(user_id="alice"))["results"] == []
