"""
Database Schemas for Village Connect

Each Pydantic model represents a MongoDB collection.
Collection name = lowercase of class name (User -> "user", ForumPost -> "forumpost").
References to other documents are stored as ObjectIds.
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field

Role = Literal['villager', 'volunteer', 'admin']
Category = Literal['infrastructure', 'health', 'education', 'agriculture', 'water', 'electricity', 'transport', 'other']
Priority = Literal['low', 'medium', 'high', 'urgent']
ProblemStatus = Literal['open', 'in-progress', 'resolved', 'closed']
SolutionStatus = Literal['pending', 'approved', 'rejected', 'implemented']

ROLES = ('villager', 'volunteer', 'admin')

USER_COLLECTION = "user"
PROBLEM_COLLECTION = "problem"
SOLUTION_COLLECTION = "solution"
FORUM_COLLECTION = "forumpost"


class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class User(Document):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address, unique")
    password_hash: str = Field(..., description="Hashed password")
    village: str = Field(..., description="Home village")
    role: Role = Field('villager', description="Role of the account")


class Problem(Document):
    title: str
    description: str
    category: Category
    location: Optional[str] = Field(None, description="Where the problem is")
    images: List[str] = Field(default_factory=list, description="Image URLs")
    priority: Priority = 'medium'
    status: ProblemStatus = 'open'
    isVerified: bool = False
    reportedBy: ObjectId
    assignedTo: Optional[ObjectId] = None
    upvotes: List[ObjectId] = Field(default_factory=list)
    solutions: List[ObjectId] = Field(default_factory=list)
    resolvedAt: Optional[datetime] = None
    completionMessage: Optional[str] = None
    isCompletedByVillager: bool = False


class Comment(Document):
    id: ObjectId = Field(default_factory=ObjectId, alias="_id")
    user: ObjectId
    text: str
    createdAt: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ForumComment(Comment):
    upvotes: List[ObjectId] = Field(default_factory=list)


class Solution(Document):
    problem: ObjectId
    title: str
    description: str
    proposedBy: ObjectId
    status: SolutionStatus = 'pending'
    upvotes: List[ObjectId] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)
    estimatedCost: Optional[float] = Field(None, ge=0)
    estimatedTime: Optional[str] = None
    implementedAt: Optional[datetime] = None


class ForumPost(Document):
    title: str
    content: str
    category: str = 'general'
    author: ObjectId
    isPinned: bool = False
    upvotes: List[ObjectId] = Field(default_factory=list)
    comments: List[ForumComment] = Field(default_factory=list)
