"""
Meal analysis orchestration.

An initial model pass produces a working result; low confidence or explicit
tool requests from the model trigger secondary tools (brand search, deep
analysis, nutrition lookup), whose parsed replies replace the working result.
The final result is made calorie-consistent and enriched with micronutrients.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from platewise.config import settings
from platewise.services.analysis_schemas import (
    AnalysisMetadata,
    AnalysisRequest,
    AnalysisResult,
    AnalysisTool,
    Complexity,
)
from platewise.services.consistency import ConsistencyValidator
from platewise.services.micronutrients import (
    MicronutrientEnricher,
    UsdaMicronutrientDatabase,
)
from platewise.services.model_client import ClaudeModelClient
from platewise.services.prompts import (
    DETECT_FROM_IMAGE,
    build_brand_search_prompt,
    build_deep_analysis_prompt,
    build_initial_prompt,
    build_nutrition_lookup_prompt,
)
from platewise.services.response_parser import ParseMode, ParseOutcome, ResponseParser
from platewise.services.result_cache import ResultCache, make_key
from platewise.services.tool_invoker import (
    AnalysisCancelledError,
    AnalysisTimeoutError,
    InvalidInputError,
    ToolFailureError,
    ToolInvoker,
)


logger = logging.getLogger(__name__)

BRAND_KEYWORDS = (
    "mcdonald",
    "mcdonalds",
    "burger king",
    "wendy",
    "subway",
    "chipotle",
    "starbucks",
    "dunkin",
    "panera",
    "chick-fil-a",
    "taco bell",
    "kfc",
    "pizza hut",
    "dominos",
    "papa johns",
    "five guys",
    "shake shack",
    "in-n-out",
    "whataburger",
    "arbys",
    "popeyes",
    "sonic",
    "dairy queen",
    "panda express",
    "qdoba",
    "jimmy johns",
    "jersey mikes",
    "firehouse",
    "sweetgreen",
    "cava",
    "tropical smoothie",
    "jamba juice",
    "smoothie king",
)

FALLBACK_CONFIDENCE_BOOST = 0.15
FALLBACK_CONFIDENCE_CAP = 0.9


def match_brand_keyword(*texts: Optional[str]) -> Optional[str]:
    """Return the display form of the first known brand found in the texts."""
    haystack = " ".join(t for t in texts if t).lower()
    for keyword in BRAND_KEYWORDS:
        if keyword in haystack:
            return " ".join(word.capitalize() for word in keyword.replace("-", " ").split())
    return None


def classify_complexity(
    result: AnalysisResult, brand: Optional[str], tools_used: list[AnalysisTool]
) -> Complexity:
    if brand:
        return Complexity.RESTAURANT
    if len(result.ingredients) > 8 or AnalysisTool.DEEP_ANALYSIS in tools_used:
        return Complexity.COMPLEX
    if len(result.ingredients) > 3:
        return Complexity.MODERATE
    return Complexity.SIMPLE


@dataclass
class AnalysisRun:
    """Mutable bookkeeping for one `analyze` call."""

    request: AnalysisRequest
    started: float
    cancel_event: Optional[asyncio.Event] = None
    initial: Optional[AnalysisResult] = None
    brand: Optional[str] = None
    tools_used: list[AnalysisTool] = field(default_factory=list)
    tool_calls: int = 0
    cache_hit: bool = False
    parse_degraded: bool = False

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise AnalysisCancelledError("Analysis cancelled by caller")


class AnalysisOrchestrator:
    """
    Runs the tool pipeline for a single AnalysisRequest.

    Collaborators are injected; the only state shared between concurrent
    `analyze` calls is the brand result cache.
    """

    def __init__(
        self,
        tool_invoker: ToolInvoker,
        parser: Optional[ResponseParser] = None,
        validator: Optional[ConsistencyValidator] = None,
        enricher: Optional[MicronutrientEnricher] = None,
        cache: Optional[ResultCache] = None,
        confidence_threshold: Optional[float] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.tool_invoker = tool_invoker
        self.parser = parser or ResponseParser()
        self.validator = validator or ConsistencyValidator()
        self.enricher = enricher or MicronutrientEnricher(UsdaMicronutrientDatabase())
        self.cache = cache if cache is not None else ResultCache()
        self.confidence_threshold = (
            settings.secondary_confidence_threshold
            if confidence_threshold is None
            else confidence_threshold
        )
        self.timeout = settings.analysis_timeout_seconds if timeout is None else timeout
        self.clock = clock

    @classmethod
    def with_claude(cls, api_key: Optional[str] = None) -> "AnalysisOrchestrator":
        """Production wiring on top of the Anthropic API."""
        return cls(ToolInvoker(ClaudeModelClient(api_key=api_key)))

    async def analyze(
        self,
        request: AnalysisRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> tuple[AnalysisResult, AnalysisMetadata]:
        """
        Analyze a meal photo and/or description.

        Args:
            request: Image and/or transcript plus the user's nutrition context
            cancel_event: Set by the caller to abandon the analysis

        Returns:
            (result, metadata) tuple

        Raises:
            InvalidInputError: Neither an image nor a transcript was supplied
            AnalysisTimeoutError: The wall-clock budget was exceeded
            AnalysisCancelledError: cancel_event was set
            ToolFailureError: A requested deep analysis or lookup failed
            AnalysisError: The initial model pass failed
        """
        if not request.has_image and not request.has_transcript:
            raise InvalidInputError("Provide a meal photo or a description")

        run = AnalysisRun(request=request, started=self.clock(), cancel_event=cancel_event)
        if not self.timeout or self.timeout <= 0:
            return await self._run(run)
        try:
            return await asyncio.wait_for(self._run(run), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error("Analysis exceeded %.0fs budget", self.timeout)
            raise AnalysisTimeoutError(
                f"Analysis did not finish within {self.timeout:.0f} seconds"
            ) from e

    # =========================================================================
    # PIPELINE STAGES
    # =========================================================================

    async def _run(self, run: AnalysisRun) -> tuple[AnalysisResult, AnalysisMetadata]:
        run.check_cancelled()
        request = run.request

        outcome = await self._call_tool(
            run, AnalysisTool.INITIAL, build_initial_prompt(request), request.image
        )
        result = outcome.result
        run.initial = result
        run.brand = result.brand_detected
        logger.info(
            "Initial analysis: %s (confidence %.2f)", result.meal_name, result.confidence
        )

        run.check_cancelled()
        if self._needs_secondary(result):
            result = await self._run_secondary(run, result)
        else:
            logger.info("High confidence result, no tools needed")

        run.check_cancelled()
        result = self.validator.validate(result)
        result = self.enricher.enrich(
            result, result.ingredients, request.user_context.goal
        )
        return result, self._build_metadata(run, result)

    def _needs_secondary(self, result: AnalysisResult) -> bool:
        if result.requested_tool_set:
            logger.info("Model requested tools: %s", ", ".join(result.requested_tools))
            return True
        return result.confidence <= self.confidence_threshold

    async def _run_secondary(
        self, run: AnalysisRun, working: AnalysisResult
    ) -> AnalysisResult:
        requested = working.requested_tool_set

        brand = self._suspected_brand(run, working)
        if brand is not None:
            working = await self._brand_search(run, working, brand)
            run.check_cancelled()

        if AnalysisTool.DEEP_ANALYSIS in requested:
            working = await self._required_tool(
                run,
                working,
                AnalysisTool.DEEP_ANALYSIS,
                build_deep_analysis_prompt(run.request, working),
                run.request.image,
            )
            run.check_cancelled()

        if AnalysisTool.NUTRITION_LOOKUP in requested:
            working = await self._required_tool(
                run,
                working,
                AnalysisTool.NUTRITION_LOOKUP,
                build_nutrition_lookup_prompt(run.request, working),
                None,  # lookup is text-only
            )
            run.check_cancelled()

        return working

    def _suspected_brand(
        self, run: AnalysisRun, result: AnalysisResult
    ) -> Optional[str]:
        if result.brand_detected:
            return result.brand_detected
        keyword = match_brand_keyword(result.meal_name, run.request.transcript)
        if keyword:
            run.brand = keyword
            return keyword
        if run.request.has_image:
            return DETECT_FROM_IMAGE
        return None

    async def _brand_search(
        self, run: AnalysisRun, working: AnalysisResult, brand: str
    ) -> AnalysisResult:
        """Brand lookup; any failure leaves the working result untouched."""
        key = None
        if brand != DETECT_FROM_IMAGE:
            key = make_key(brand, working.meal_name)
            cached = self.cache.get(key)
            if cached is not None:
                logger.info("Using cached brand result for %s", key)
                run.cache_hit = True
                return self._merge(run, working, cached)

        try:
            outcome = await self._call_tool(
                run,
                AnalysisTool.BRAND_SEARCH,
                build_brand_search_prompt(run.request, working, brand),
                run.request.image,
            )
        except AnalysisCancelledError:
            raise
        except Exception as e:
            logger.warning("Brand search failed, keeping working result: %s", e)
            return working

        if outcome.mode is ParseMode.FALLBACK:
            logger.warning("Brand search reply unusable, keeping working result")
            return working

        if outcome.result.brand_detected:
            run.brand = outcome.result.brand_detected
        merged = self._merge(run, working, outcome.result)
        if key is not None:
            self.cache.put(key, merged)
        return merged

    async def _required_tool(
        self,
        run: AnalysisRun,
        working: AnalysisResult,
        tool: AnalysisTool,
        prompt_variables: dict,
        image: Optional[bytes],
    ) -> AnalysisResult:
        try:
            outcome = await self._call_tool(run, tool, prompt_variables, image)
        except AnalysisCancelledError:
            raise
        except Exception as e:
            logger.error("%s failed: %s", tool.value, e)
            raise ToolFailureError(tool, f"{tool.value} failed: {e}") from e

        if outcome.mode is ParseMode.FALLBACK:
            confidence = min(
                FALLBACK_CONFIDENCE_CAP, working.confidence + FALLBACK_CONFIDENCE_BOOST
            )
            logger.warning(
                "%s reply unusable, keeping working result at confidence %.2f",
                tool.value,
                confidence,
            )
            return working.model_copy(update={"confidence": confidence})

        return self._merge(run, working, outcome.result)

    async def _call_tool(
        self,
        run: AnalysisRun,
        tool: AnalysisTool,
        prompt_variables: dict,
        image: Optional[bytes],
    ) -> ParseOutcome:
        if tool is not AnalysisTool.INITIAL:
            run.tools_used.append(tool)
        run.tool_calls += 1

        response = await self.tool_invoker.invoke(prompt_variables, image=image, tool=tool)
        run.check_cancelled()

        outcome = self.parser.parse_with_outcome(response.text)
        if outcome.degraded:
            run.parse_degraded = True
            logger.warning("%s reply decoded in %s mode", tool.value, outcome.mode.value)
        return outcome

    def _merge(
        self, run: AnalysisRun, working: AnalysisResult, incoming: AnalysisResult
    ) -> AnalysisResult:
        """Replace the working result, keeping a branded meal name if it was lost."""
        brand = run.brand
        initial_name = run.initial.meal_name if run.initial else working.meal_name
        if (
            brand
            and brand.lower() not in incoming.meal_name.lower()
            and brand.lower() in initial_name.lower()
        ):
            logger.warning("Brand name missing from %r, keeping %r", incoming.meal_name, initial_name)
            return incoming.model_copy(update={"meal_name": initial_name})
        return incoming

    def _build_metadata(
        self, run: AnalysisRun, result: AnalysisResult
    ) -> AnalysisMetadata:
        brand = (
            result.brand_detected
            or run.brand
            or match_brand_keyword(result.meal_name, run.request.transcript)
        )
        return AnalysisMetadata(
            tools_used=list(run.tools_used),
            tool_calls=run.tool_calls,
            complexity=classify_complexity(result, brand, run.tools_used),
            analysis_time=self.clock() - run.started,
            confidence=result.confidence,
            ingredient_count=len(result.ingredients),
            brand_detected=brand,
            cache_hit=run.cache_hit,
            parse_degraded=run.parse_degraded,
        )
