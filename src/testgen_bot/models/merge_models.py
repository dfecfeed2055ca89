"""Models for test-artifact merging."""

from typing import Literal

from pydantic import BaseModel, ConfigDict

BlockKeyword = Literal["describe", "it", "test"]


class TestBlock(BaseModel):
    """A top-level describe/it/test block found in a test artifact."""

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(frozen=True)

    keyword: BlockKeyword
    title: str
    text: str

    @property
    def identity(self) -> tuple[str, str]:
        return (self.keyword, self.title)
