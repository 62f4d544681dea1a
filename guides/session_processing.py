"""Session processing workflow with a human-gated sheet write."""

import asyncio

from orchestrant import BaseAgent, SideEffectAgent, WriteIntent, create_orchestrator
from orchestrant.events import EventRecorder


class TranscriberAgent(BaseAgent):
    ready_event = "transcript_ready"

    async def run(self, input):
        return f"Transcript of {input['recording']}: the party reached the keep."


class SummarizerAgent(BaseAgent):
    ready_event = "summary_ready"

    async def run(self, input):
        return {"summary": input["transcriber"].split(": ", 1)[1]}


class StateAgent(BaseAgent):
    async def run(self, input):
        return {"location": "the keep", "party_level": 4}


class SheetsAgent(SideEffectAgent):
    """Appends a session row once a DM approves it."""

    def __init__(self, name="sheets", **kwargs):
        super().__init__(name, **kwargs)
        self.rows = []

    async def prepare_write(self, input):
        row = [input["summarizer"]["summary"], input["state"]["location"]]
        return WriteIntent(target="Gameplay Log", payload={"row": row})

    async def apply_write(self, write_request, approval):
        self.rows.append(write_request.payload["row"])
        return {"range": f"{write_request.target}!A{len(self.rows) + 1}"}


def build_agents():
    """Agent factory, referenced as ``agents`` in guides/config.yaml."""
    return [
        TranscriberAgent("transcriber"),
        SummarizerAgent("summarizer"),
        StateAgent("state"),
        SheetsAgent(),
    ]


async def main():
    orchestrator = create_orchestrator(
        agents=build_agents(),
        workflows=[
            {
                "name": "session-processing",
                "steps": [
                    {"agent": "transcriber", "streaming": True},
                    {"parallel": ["summarizer", "state"]},
                    {"agent": "sheets", "requires_approval": True},
                ],
            }
        ],
    )
    recorder = EventRecorder(orchestrator.bus)

    context = await orchestrator.execute_workflow(
        "session-processing", {"recording": "session-12.mp3"}
    )
    request = context["sheets"]
    print(f"✅ Workflow completed, write request {request['id']} is {request['status']}")

    # Later, a human reviews the pending write
    outcome = await orchestrator.submit_approval(request["id"], "dm", "approve")
    print(f"📝 {outcome.write_request.status} by {outcome.approval.approver_id}")
    print(f"📊 Commit result: {outcome.commit.result}")
    print(f"🔗 Events: {[e.type for e in recorder.events if e.type != 'log']}")


if __name__ == "__main__":
    asyncio.run(main())
