"""
Token Predictor
Picks one token from the liquid catalog for the agent's goal.

- LLM choice is resolved against the catalog (by account id or symbol);
  the model's identifiers are never used verbatim
- Unknown choice, unparseable reply or LLM failure -> keyword fallback
  with FALLBACK_CONFIDENCE
"""

import logging
from typing import Any, List, Optional

from agents.models import TokenInfo, TokenPrediction
from data_sources.llm_client import LLMClient, Malformed, extract_json

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.5
STABLECOIN_MARKERS = ["usdt", "usdc", "dai", "usn", "busd"]
FALLBACK_SUFFIX = "This is a fallback selection due to AI analysis error."


class PredictionRejected(ValueError):
    """Model reply parsed but cannot be used"""
    pass


def build_prediction_prompt(tokens: List[TokenInfo], goal: str) -> str:
    token_list = "\n".join(f"- {t.symbol} ({t.token_account_id}): ${t.price}" for t in tokens)

    return f"""You are an AI investment advisor analyzing tokens on NEAR Protocol's Ref Finance DEX.

CRITICAL: In your JSON response, "selectedToken" MUST be the full token_account_id (like "usdt.fakes.testnet"), NOT just the symbol. You can use either the token_account_id OR the symbol - the system will map it correctly.

IMPORTANT: You MUST follow the user's instructions in the Agent Goal exactly. If they ask for a "stable token", you MUST select a stablecoin (USDT, USDC, DAI, etc.). If they specify a token type or characteristic, prioritize that above all else.

Agent Goal: {goal}

Available Tokens:
{token_list}

Based on the agent's goal and the available tokens, analyze and select THE BEST SINGLE TOKEN that matches the user's requirements.

Selection Priority:
1. **FOLLOW USER INSTRUCTIONS** - If they specify "stable token", "high growth", "low risk", etc., this is your PRIMARY constraint
2. Alignment with the agent's goal and requirements
3. Token availability and liquidity
4. Price and potential for growth
5. Risk vs reward

Common Token Types:
- Stablecoins (stable value): USDT, USDC, DAI, USN, BUSD
- Wrapped assets: wBTC, wETH, wNEAR
- Native tokens: NEAR, REF, etc.

Respond in JSON format with:
{{
  "selectedToken": "token_account_id_or_symbol",
  "symbol": "TOKEN_SYMBOL",
  "reasoning": "Detailed explanation of why this token was selected and how it matches the user's requirements",
  "confidence": 0.85,
  "price": "current_price"
}}

Return ONLY valid JSON, no other text."""


def resolve_token(tokens: List[TokenInfo], identifier: str) -> Optional[TokenInfo]:
    """Catalog entry whose account id or symbol equals identifier"""
    for token in tokens:
        if token.token_account_id == identifier or token.symbol == identifier:
            return token
    return None


def _confidence_of(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.8
    return min(max(confidence, 0.0), 1.0)


def prediction_from_reply(value: Any, tokens: List[TokenInfo]) -> TokenPrediction:
    """Validate a parsed reply and pin it to the catalog entry it names"""
    if not isinstance(value, dict):
        raise PredictionRejected("Invalid prediction format: expected an object")

    selected = value.get("selectedToken")
    reasoning = value.get("reasoning")
    if not selected or not reasoning:
        raise PredictionRejected("Invalid prediction format: missing required fields")

    match = resolve_token(tokens, str(selected))
    if match is None:
        raise PredictionRejected(f'Selected token "{selected}" not found in available tokens')

    return TokenPrediction(
        selected_token=match.token_account_id,
        symbol=match.symbol,
        reasoning=str(reasoning),
        confidence=_confidence_of(value.get("confidence")),
        price=match.price,
        source="llm",
    )


def fallback_prediction(tokens: List[TokenInfo], goal: str) -> TokenPrediction:
    """
    Keyword heuristics on the goal text, in priority order:
    stable -> stablecoin, btc/bitcoin -> BTC, eth/ethereum -> ETH, else first token.
    """
    if not tokens:
        raise ValueError("Cannot predict a token from an empty catalog")

    chosen = tokens[0]
    reasoning = f"Selected based on highest price and liquidity. {FALLBACK_SUFFIX}"
    goal_lower = (goal or "").lower()

    if "stable" in goal_lower:
        stable = next(
            (t for t in tokens if any(marker in t.symbol.lower() for marker in STABLECOIN_MARKERS)),
            None,
        )
        if stable:
            chosen = stable
            reasoning = (f"Selected {stable.symbol} as a stable token based on user instruction "
                         f"for stable tokens. {FALLBACK_SUFFIX}")
        else:
            logger.warning("[TokenPredictor] Stable token requested but none found in available tokens")
    elif "btc" in goal_lower or "bitcoin" in goal_lower:
        btc = next((t for t in tokens if "btc" in t.symbol.lower()), None)
        if btc:
            chosen = btc
            reasoning = f"Selected {btc.symbol} based on user mention of BTC/Bitcoin. {FALLBACK_SUFFIX}"
    elif "eth" in goal_lower or "ethereum" in goal_lower:
        eth = next((t for t in tokens if "eth" in t.symbol.lower()), None)
        if eth:
            chosen = eth
            reasoning = f"Selected {eth.symbol} based on user mention of ETH/Ethereum. {FALLBACK_SUFFIX}"

    return TokenPrediction(
        selected_token=chosen.token_account_id,
        symbol=chosen.symbol,
        reasoning=reasoning,
        confidence=FALLBACK_CONFIDENCE,
        price=chosen.price,
        source="fallback",
    )


class TokenPredictor:
    """
    Usage:
        predictor = TokenPredictor(llm)
        prediction = await predictor.predict_token(tokens, "swap 0.5 NEAR to a stable token")
    """

    def __init__(self, llm: LLMClient, temperature: float = 0.3):
        self.llm = llm
        self.temperature = temperature

    async def predict_token(self, tokens: List[TokenInfo], goal: str) -> TokenPrediction:
        """Raises ValueError only for an empty catalog"""
        try:
            text = await self.llm.complete(build_prediction_prompt(tokens, goal), temperature=self.temperature)
            result = extract_json(text, allow_bare_object=True)
            if isinstance(result, Malformed):
                raise PredictionRejected(f"Unparseable prediction: {result.reason}")
            prediction = prediction_from_reply(result.value, tokens)
        except Exception as e:
            logger.error(f"[TokenPredictor] Error predicting token: {e}")
            prediction = fallback_prediction(tokens, goal)
            logger.info(f"[TokenPredictor] Using fallback token: {prediction.symbol}")
            return prediction

        logger.info(f"[TokenPredictor] Token prediction successful: {prediction.symbol} "
                    f"({prediction.selected_token})")
        return prediction
