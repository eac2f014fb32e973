"""Knowledge Graph: requirements, features, tests and their traceability links."""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel


class NodeType(str, Enum):
    REQUIREMENT = "requirement"
    FEATURE = "feature"
    TEST = "test"


class EdgeType(str, Enum):
    IMPLEMENTS = "implements"   # requirement → feature
    TESTS = "tests"             # test → feature
    VERIFIES = "verifies"       # test → requirement


class NodeMetadata(BaseModel):
    priority: Optional[str] = None          # "Must" | "Should" | "Could" | "Wont"
    status: Optional[str] = None            # "pending" | "in_progress" | "completed"
    owner: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class KnowledgeNode(BaseModel):
    """A single requirement, feature or test."""

    id: str
    type: NodeType
    label: str                              # e.g., "BR-001"
    description: str = ""
    metadata: Optional[NodeMetadata] = None


class KnowledgeEdge(BaseModel):
    """A directed traceability link between two nodes."""

    id: str
    source: str
    target: str
    label: Optional[str] = None
    type: EdgeType = EdgeType.IMPLEMENTS


class GraphMetadata(BaseModel):
    project_name: str = "untitled"
    version: str = "1.0"
    last_updated: datetime


class KnowledgeGraph(BaseModel):
    """The full graph. Nodes and edges are keyed by id."""

    nodes: Dict[str, KnowledgeNode] = {}
    edges: Dict[str, KnowledgeEdge] = {}
    metadata: GraphMetadata
