# Scriva schema definitions
from .base import ScrivaModel

# Book configuration and manuscript structure
from .config_schemas import (
    WritingType,
    ModelTier,
    TaskType,
    ScrivaFeatures,
    ScrivaAIConfig,
    ScrivaConfig,
    default_features_for_type,
    default_scriva_config,
    Chapter,
    Part,
    Book,
    CompileTask,
)

# Persisted state stores
from .state_schemas import (
    # World model
    Relationship,
    CharacterNode,
    PlaceNode,
    TimelineEvent,
    ObjectNode,
    WorldRule,
    WorldModel,
    WorldModelUpdate,
    # Narrative state
    NarrativeState,
    NarrativePromise,
    PlotThread,
    TensionData,
    NarrativeUpdate,
    # Voice DNA
    VoiceMetrics,
    VoiceProfile,
    VoiceExemplar,
    AntiPattern,
    VoiceDrift,
    QUALITY_RANK,
    # Writing rules
    WritingRulesOverride,
    WritingRules,
    LearnedPreference,
    RevisionEntry,
    # Memory / citations
    SceneBeat,
    CitationEntry,
)

# Retrieval engine
from .retrieval_schemas import (
    ChunkType,
    TextChunk,
    RAGFilters,
    RAGQuery,
    RAGResult,
    EmbeddingManifest,
)

# Briefing (compiler output)
from .briefing_schemas import (
    Priority,
    PRIORITY_ORDER,
    BriefingSection,
    ContextBriefing,
)

__all__ = [
    "ScrivaModel",
    # Config
    "WritingType",
    "ModelTier",
    "TaskType",
    "ScrivaFeatures",
    "ScrivaAIConfig",
    "ScrivaConfig",
    "default_features_for_type",
    "default_scriva_config",
    "Chapter",
    "Part",
    "Book",
    "CompileTask",
    # World model
    "Relationship",
    "CharacterNode",
    "PlaceNode",
    "TimelineEvent",
    "ObjectNode",
    "WorldRule",
    "WorldModel",
    "WorldModelUpdate",
    # Narrative state
    "NarrativeState",
    "NarrativePromise",
    "PlotThread",
    "TensionData",
    "NarrativeUpdate",
    # Voice DNA
    "VoiceMetrics",
    "VoiceProfile",
    "VoiceExemplar",
    "AntiPattern",
    "VoiceDrift",
    "QUALITY_RANK",
    # Writing rules
    "WritingRulesOverride",
    "WritingRules",
    "LearnedPreference",
    "RevisionEntry",
    # Memory / citations
    "SceneBeat",
    "CitationEntry",
    # Retrieval
    "ChunkType",
    "TextChunk",
    "RAGFilters",
    "RAGQuery",
    "RAGResult",
    "EmbeddingManifest",
    # Briefing
    "Priority",
    "PRIORITY_ORDER",
    "BriefingSection",
    "ContextBriefing",
]
