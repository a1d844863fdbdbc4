from __future__ import annotations


class StoryPersistenceError(RuntimeError):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        retryable: bool = True,
    ) -> None:
        super().__init__(message)
        self.code = str(code)
        self.message = str(message)
        self.retryable = bool(retryable)


class StoryNotFoundError(StoryPersistenceError):
    def __init__(self, story_id: str) -> None:
        super().__init__(
            code="STORY_NOT_FOUND",
            message=f"story `{story_id}` not found",
            retryable=False,
        )
        self.story_id = str(story_id)


class StorySnapshotInvalidError(StoryPersistenceError):
    def __init__(self, *, detail: str | None = None) -> None:
        message = "Story snapshot failed validation."
        if detail:
            message = f"{message} ({detail})"
        super().__init__(code="STORY_SNAPSHOT_INVALID", message=message, retryable=False)
