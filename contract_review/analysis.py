"""AI risk analysis of contract text, with a deterministic mock fallback."""
import enum
import json
import logging
from typing import Optional, Sequence, Tuple

import openai
import tiktoken
from openai import OpenAI
from pydantic import ValidationError

from contract_review.config import Settings
from contract_review.errors import AnalysisFailed, AnalysisParseError
from contract_review.schemas import AnalysisResult, ArticleInput, ArticleOrderSuggestion

logger = logging.getLogger(__name__)

MOCK_MODEL_NAME = "mock"

SYSTEM_PROMPT = """You are a legal AI assistant that reviews commercial contracts.
Analyze the contract, identify risks for our side and propose concrete improvements.

Review the contract along these dimensions:
1. Liability and damages (caps, exclusions, indemnities)
2. Termination (unilateral termination rights, notice periods)
3. Intellectual property (ownership, scope of licenses)
4. Confidentiality (scope and duration)
5. Non-compete (scope and duration)
6. Payment terms (due dates, late payment interest)
7. Term and renewal (automatic renewal, cancellation conditions)
8. Jurisdiction and governing law

For each risk provide:
- riskLevel: "high", "medium" or "low"
- originalText: the affected passage copied verbatim from the contract, body text
  only (no clause heading), only the sentences relevant to the risk, on one line
- suggestedText: the passage rewritten to address the risk
- reason: why the change is recommended
- legalBasis: the statute, regulation or legal principle relied on

Respond ONLY with a JSON object in exactly this format:
{
  "riskLevel": "high" | "medium" | "low",
  "overallScore": 0-100,
  "summary": "Overall assessment of the contract (max 200 characters)",
  "risks": [
    {
      "riskType": "Liability",
      "riskLevel": "high" | "medium" | "low",
      "sectionTitle": "Section name",
      "originalText": "Verbatim passage from the contract",
      "suggestedText": "Proposed wording",
      "reason": "Reason for the change",
      "legalBasis": "Legal basis"
    }
  ],
  "checklist": [
    {"item": "Checklist item", "checked": true | false, "note": "Optional note"}
  ]
}"""

ARTICLE_ORDER_PROMPT = """You are an expert in drafting commercial contracts.
Reorder the articles of a contract into the conventional, legally sound order.

Conventional order of contract articles:
1. Definitions and purpose
2. Scope of work
3. Fees and payment terms
4. Rights and obligations
5. Intellectual property
6. Confidentiality
7. Damages and liability
8. Term and renewal
9. Termination
10. Exclusion of anti-social forces
11. Jurisdiction
12. Good-faith consultation
13. Miscellaneous and supplementary provisions

Use this order as a guide to arrange the articles you are given."""

# Keyword -> position in the conventional order. Checked top to bottom, so
# more specific keywords come before the ones they contain ("termination"
# before "term", "copyright" before "right").
ARTICLE_ORDER_PRIORITY: Tuple[Tuple[str, int], ...] = (
    ("purpose", 1),
    ("definition", 2),
    ("scope", 3),
    ("services", 3),
    ("work", 3),
    ("outsourc", 3),
    ("fee", 4),
    ("payment", 4),
    ("compensation", 4),
    ("price", 4),
    ("intellectual property", 6),
    ("copyright", 6),
    ("right", 5),
    ("obligation", 5),
    ("confidential", 7),
    ("non-disclosure", 7),
    ("damage", 8),
    ("indemn", 8),
    ("liabilit", 8),
    ("terminat", 10),
    ("cancel", 10),
    ("expir", 10),
    ("term", 9),
    ("renewal", 9),
    ("anti-social", 11),
    ("jurisdiction", 12),
    ("court", 12),
    ("consultation", 13),
    ("miscellaneous", 14),
    ("supplementary", 14),
)
UNKNOWN_ARTICLE_PRIORITY = 100


class EngineKind(str, enum.Enum):
    """Which analysis engine a run uses."""
    REAL = "real"
    MOCK = "mock"


def choose_engine(has_credential: bool, force_mock: bool, extraction_valid: bool) -> EngineKind:
    """Decide between the model-backed engine and the mock engine."""
    if has_credential and not force_mock and extraction_valid:
        return EngineKind.REAL
    return EngineKind.MOCK


def extract_json_object(text: str) -> str:
    """Return the first balanced JSON object embedded in text.

    Braces inside string literals (including escaped quotes) are ignored.

    Raises:
        AnalysisParseError: no complete object was found
    """
    start = text.find("{") if text else -1
    if start == -1:
        raise AnalysisParseError("No JSON object found in model response")

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        ch = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]

    raise AnalysisParseError("Unbalanced JSON object in model response")


def _parse_json_response(text: str, schema, what: str):
    raw = extract_json_object(text)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise AnalysisParseError(f"Invalid JSON in model response: {e}") from e

    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise AnalysisParseError(f"Model response does not match the {what} schema: {e}") from e


def parse_analysis_response(text: str) -> AnalysisResult:
    """Parse a raw model response into an AnalysisResult."""
    return _parse_json_response(text, AnalysisResult, "analysis")


def parse_article_order_response(text: str) -> ArticleOrderSuggestion:
    """Parse a raw model response into an ArticleOrderSuggestion."""
    return _parse_json_response(text, ArticleOrderSuggestion, "article order")


class RiskAnalysisEngine:
    """Risk analysis backed by an OpenAI chat model."""

    def __init__(
        self,
        client: OpenAI,
        model: str = "gpt-4o-mini",
        timeout: float = 60.0,
        max_input_tokens: int = 12000,
        max_output_tokens: int = 4096,
    ):
        """Initialize risk analysis engine.

        Args:
            client: Configured OpenAI client
            model: Chat model used for the analysis
            timeout: Seconds to wait for the model before giving up
            max_input_tokens: Contract text beyond this budget is truncated
            max_output_tokens: Maximum tokens for the response
        """
        self.client = client
        self.model = model
        self.timeout = timeout
        self.max_input_tokens = max_input_tokens
        self.max_output_tokens = max_output_tokens
        self._tokenizer = None

    @property
    def model_name(self) -> str:
        return self.model

    def _encoding(self):
        if self._tokenizer is None:
            try:
                self._tokenizer = tiktoken.encoding_for_model(self.model)
            except KeyError:
                self._tokenizer = tiktoken.get_encoding("cl100k_base")
        return self._tokenizer

    def truncate(self, text: str) -> str:
        """Trim text to the input token budget."""
        # Every token covers at least one character
        if len(text) <= self.max_input_tokens:
            return text
        encoding = self._encoding()
        tokens = encoding.encode(text)
        if len(tokens) <= self.max_input_tokens:
            return text
        logger.warning(
            f"Contract text truncated from {len(tokens)} to {self.max_input_tokens} tokens"
        )
        return encoding.decode(tokens[:self.max_input_tokens])

    def _complete(self, system_prompt: str, prompt: str, max_tokens: int) -> str:
        """Run one chat completion and return its text."""
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt}
                ],
                max_tokens=max_tokens,
                temperature=0.2,
                timeout=self.timeout,
            )
        except openai.APITimeoutError as e:
            logger.error(f"Model call timed out after {self.timeout}s")
            raise AnalysisFailed("Model call timed out") from e
        except openai.OpenAIError as e:
            logger.error(f"Model call failed: {e}")
            raise AnalysisFailed(f"Model call failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise AnalysisParseError("Empty model response")
        return content

    def analyze(self, contract_text: str, contract_type: str) -> AnalysisResult:
        """Analyze contract text.

        Raises:
            AnalysisFailed: the model call errored or timed out
            AnalysisParseError: the response held no valid analysis object
        """
        prompt = (
            f"Analyze the following {contract_type}.\n\n"
            f"---\n{self.truncate(contract_text)}\n---\n\n"
            "Answer in JSON."
        )
        content = self._complete(SYSTEM_PROMPT, prompt, self.max_output_tokens)
        return parse_analysis_response(content)

    def suggest_article_order(self, articles: Sequence[ArticleInput]) -> ArticleOrderSuggestion:
        """Ask the model for the conventional order of the given articles."""
        article_list = "\n".join(f"Article {a.number} ({a.title})" for a in articles)
        prompt = (
            "Reorder the following articles into the best order.\n\n"
            f"{article_list}\n\n"
            "Answer in JSON:\n"
            '{\n  "suggestedOrder": ["1", "3", "2", ...],\n'
            '  "reasoning": ["Definitions placed first", ...]\n}'
        )
        content = self._complete(ARTICLE_ORDER_PROMPT, prompt, 2048)
        return parse_article_order_response(content)


class MockAnalysisEngine:
    """Fixed, realistic analysis used when the model cannot be used."""

    model_name = MOCK_MODEL_NAME

    def analyze(self, contract_text: Optional[str], contract_type: str) -> AnalysisResult:
        return AnalysisResult.model_validate({
            "riskLevel": "medium",
            "overallScore": 72,
            "summary": (
                "This contract is broadly standard, but the liability and "
                "termination clauses need attention: check the damages cap and "
                "whether termination rights are one-sided."
            ),
            "risks": [
                {
                    "riskType": "Liability",
                    "riskLevel": "high",
                    "sectionTitle": "Article 10 (Damages)",
                    "originalText": (
                        "The Contractor shall compensate the Client for any and all "
                        "damages arising from a breach of this Agreement."
                    ),
                    "suggestedText": (
                        "The Contractor shall compensate the Client for direct and actual "
                        "damages arising from a breach of this Agreement, up to the total "
                        "fees paid under this Agreement."
                    ),
                    "reason": "Liability is uncapped, exposing the Contractor to unpredictable losses.",
                    "legalBasis": "Scope of recoverable damages (foreseeability rule)",
                },
                {
                    "riskType": "Termination",
                    "riskLevel": "medium",
                    "sectionTitle": "Article 15 (Termination)",
                    "originalText": (
                        "The Client may terminate this Agreement at any time by written "
                        "notice to the Contractor."
                    ),
                    "suggestedText": (
                        "Either party may terminate this Agreement by giving the other "
                        "party at least 30 days' prior written notice."
                    ),
                    "reason": "Only the Client holds a termination right, which is unfavourable to the Contractor.",
                    "legalBasis": "Termination of mandate agreements",
                },
                {
                    "riskType": "Intellectual Property",
                    "riskLevel": "low",
                    "sectionTitle": "Article 8 (Intellectual Property)",
                    "originalText": (
                        "Intellectual property rights in the deliverables shall vest in the Client."
                    ),
                    "suggestedText": (
                        "Intellectual property rights in the deliverables shall vest in the "
                        "Client upon full payment of the fees."
                    ),
                    "reason": "The timing of the transfer is unclear; tie it to payment in full.",
                    "legalBasis": "Copyright assignment rules",
                },
            ],
            "checklist": [
                {"item": "Parties identified", "checked": True},
                {"item": "Purpose of the agreement stated", "checked": True},
                {"item": "Scope of work defined", "checked": True},
                {"item": "Fees and payment terms", "checked": True},
                {"item": "Liability cap", "checked": False, "note": "A cap is recommended"},
                {"item": "Confidentiality clause", "checked": True},
                {"item": "Term stated", "checked": True},
                {"item": "Mutual termination rights", "checked": False, "note": "Grant both parties a termination right"},
                {"item": "Jurisdiction specified", "checked": True},
            ],
        })

    def suggest_article_order(self, articles: Sequence[ArticleInput]) -> ArticleOrderSuggestion:
        """Sort articles by the conventional order of their title keywords."""
        ordered = sorted(articles, key=lambda article: article_priority(article.title))
        return ArticleOrderSuggestion(
            suggested_order=[article.number for article in ordered],
            reasoning=[
                f"Article {article.number} ({article.title}) placed at position {position}"
                for position, article in enumerate(ordered, start=1)
            ]
        )


def article_priority(title: str) -> int:
    """Position of an article title in the conventional order; unknown titles go last."""
    lowered = title.lower()
    for keyword, priority in ARTICLE_ORDER_PRIORITY:
        if keyword in lowered:
            return priority
    return UNKNOWN_ARTICLE_PRIORITY


def create_openai_client(settings: Settings) -> Optional[OpenAI]:
    """Build the OpenAI client, or None when no credential is configured."""
    if not settings.has_openai_credential:
        logger.warning("OPENAI_API_KEY not set; analyses will use the mock engine")
        return None
    return OpenAI(api_key=settings.openai_api_key, timeout=settings.openai_timeout_seconds)
