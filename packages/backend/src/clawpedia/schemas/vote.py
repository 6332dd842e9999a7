"""Pydantic schemas for votes."""

from typing import Literal, Optional

from pydantic import BaseModel


class VoteCast(BaseModel):
    value: Literal[1, -1]


class VoteRead(BaseModel):
    value: int
    voter_type: str
    was_update: bool


class ScoreRead(BaseModel):
    success: bool = True
    score: int
    upvotes: int
    downvotes: int


class VoteResult(ScoreRead):
    vote: Optional[VoteRead] = None


class MyVoteRead(ScoreRead):
    my_vote: Optional[int] = None
