# analysis/errors.py
# SkillTrack — Typed failures raised for invalid engine inputs.
# Normal rating and classification flow never raises; these mark bad input.


class SkillEngineError(ValueError):
    """Base class for every input the engine refuses to process."""


class UnknownTopicError(SkillEngineError):
    def __init__(self, topic: object) -> None:
        self.topic = topic
        super().__init__(f"Topic '{topic}' is not in the catalog.")


class MalformedSnapshotError(SkillEngineError):
    """A skill snapshot is missing or holds values no record could hold."""


class InvalidPerformanceError(SkillEngineError):
    """A performance score outside [0, 1] or not a finite number."""


class ConcurrentUpdateError(SkillEngineError):
    """Another writer committed the same (learner, topic) record first."""

    def __init__(self, learner_id: str) -> None:
        self.learner_id = learner_id
        super().__init__(
            f"Skill records for learner '{learner_id}' changed during this submission; retry."
        )
