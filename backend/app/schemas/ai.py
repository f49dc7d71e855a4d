# app/schemas/ai.py
"""
Pydantic schemas shared by the AI layer.

Field names are camelCase on purpose: UnifiedResponse, Analysis and
RichTranslation are serialized as-is to the UI, which reads these exact keys.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


Role = Literal["system", "user", "assistant"]
TranslationType = Literal["word", "phrase", "idiom", "collocation", "expression"]
Formality = Literal["formal", "neutral", "informal", "slang"]


class ChatMessage(BaseModel):
    """One turn as sent to the model."""
    role: Role
    content: str


class ConversationContext(BaseModel):
    """
    Bounded view of a chat handed to a provider.

    messages holds the most recent turns verbatim; summary (when present)
    covers the older prefix that is not in messages.
    """
    chatId: str
    threadId: Optional[str] = None  # Only used by managed-history providers
    messages: List[ChatMessage] = Field(default_factory=list)
    systemPrompt: str = ""
    summary: Optional[str] = None


class AIOptions(BaseModel):
    """Per-call tunables. None means the caller did not set the value."""
    model: Optional[str] = None
    temperature: Optional[float] = None
    maxTokens: Optional[int] = None
    motherLanguage: Optional[str] = None
    learningLanguage: Optional[str] = None
    level: Optional[str] = None  # novice | beginner | intermediate | advanced
    audioBase64: Optional[str] = None
    audioFormat: Optional[str] = None  # e.g. "wav", "mp3"
    draftTranscription: Optional[str] = None  # On-device recognizer output
    wantAudioOutput: Optional[bool] = None
    voice: Optional[str] = None


class Usage(BaseModel):
    promptTokens: int = 0
    completionTokens: int = 0
    totalTokens: int = 0


class AIResponse(BaseModel):
    content: str
    audioBase64: Optional[str] = None
    usage: Optional[Usage] = None


class GrammarError(BaseModel):
    original: str = ""
    correction: str = ""
    explanation: str = ""


class Mispronunciation(BaseModel):
    word: str = ""
    heardAs: str = ""
    correctPronunciation: str = ""  # IPA


class PronunciationAnalysis(BaseModel):
    pronunciationScore: int = 70
    transcribedText: str = ""
    mispronunciations: List[Mispronunciation] = Field(default_factory=list)
    pronunciationFeedback: str = ""


class Analysis(BaseModel):
    grammarScore: int = 70
    grammarErrors: List[GrammarError] = Field(default_factory=list)
    vocabularyScore: int = 70
    vocabularySuggestions: List[str] = Field(default_factory=list)
    relevanceScore: int = 80
    relevanceFeedback: Optional[str] = None
    overallFeedback: str = ""
    alternativePhrasings: List[str] = Field(default_factory=list)
    pronunciation: Optional[PronunciationAnalysis] = None  # Audio-grounded turns only


class UnifiedResponse(BaseModel):
    """Tutor reply and assessment of the learner's turn from a single model call."""
    reply: str
    analysis: Analysis
    audioBase64: Optional[str] = None
    usage: Optional[Usage] = None


class RichTranslation(BaseModel):
    translation: str
    type: TranslationType = "word"
    definition: str = ""
    usageExamples: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    formality: Optional[Formality] = "neutral"


class AIModel(BaseModel):
    id: str
    name: str
    contextWindow: int
    description: Optional[str] = None


class AIProviderConfig(BaseModel):
    providerId: str
    model: str
    temperature: float
    maxTokens: int


class ContextSettings(BaseModel):
    recentWindowSize: int = Field(default=20, ge=1)  # Turns always sent verbatim
    summarizeAfterMessages: int = Field(default=10, ge=1)  # Unsummarized turns needed before compaction runs
    textModel: Optional[str] = None  # Model override for summarization calls
    disableSummarization: bool = False


class ChatSummaryRecord(BaseModel):
    """Rolling summary as read from the message store."""
    chatId: str
    content: str = ""
    lastMessageIndex: int = 0  # Watermark: older-segment turns already folded into content
