from typing import Any, Dict, List

import logging
from pydantic import BaseModel, Field, field_validator

from ...core.middleware import LoggingMiddleware
from ...core.tools import Tool, ToolRegistry, ToolSpec
from .agent_kit import SolanaAgentKit, validate_wallet_address

logger = logging.getLogger(__name__)


class GetTokenPriceInput(BaseModel):
    token_address: str = Field(..., description="Token mint address")

    @field_validator("token_address")
    @classmethod
    def _validate_mint(cls, v: str) -> str:
        return validate_wallet_address(v)


def create_solana_tools(agent: SolanaAgentKit) -> ToolRegistry:
    """Build the tool registry bound to ``agent``; every handler closes over the same agent."""

    async def handle_get_balance(args: Dict[str, Any]) -> Dict[str, Any]:
        balances = await agent.get_token_balance()
        result = balances.to_dict()
        result["address"] = agent.wallet_address
        result["token_count"] = len(balances.tokens)
        return result

    async def handle_get_sol_price(args: Dict[str, Any]) -> Dict[str, Any]:
        feed_id = await agent.get_pyth_price_feed_id("SOL")
        price = await agent.get_pyth_price(feed_id)
        return {"symbol": "SOL", "price_usd": price, "source": "pyth"}

    async def handle_get_token_price(args: Dict[str, Any]) -> Dict[str, Any]:
        mint = args["token_address"]
        price = await agent.fetch_token_price(mint)
        return {"token_address": mint, "price_usd": price, "source": "jupiter"}

    async def handle_get_wallet_address(args: Dict[str, Any]) -> Dict[str, Any]:
        return {"address": agent.wallet_address}

    tools: List[Tool] = [
        Tool(
            spec=ToolSpec(
                name="get_balance",
                description="Get the connected wallet's SOL balance and all SPL token balances in one call.",
                input_schema={
                    "parameters": {"type": "object", "properties": {}, "required": []},
                },
            ),
            handler=handle_get_balance,
        ),
        Tool(
            spec=ToolSpec(
                name="get_sol_price",
                description="Get the current SOL price in USD from the Pyth oracle.",
                input_schema={
                    "parameters": {"type": "object", "properties": {}, "required": []},
                },
            ),
            handler=handle_get_sol_price,
        ),
        Tool(
            spec=ToolSpec(
                name="get_token_price",
                description="Get the current USD price of a Solana token by its mint address.",
                input_schema={
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "token_address": {
                                "type": "string",
                                "description": "Token mint address",
                            }
                        },
                        "required": ["token_address"],
                    },
                },
            ),
            handler=handle_get_token_price,
            input_model=GetTokenPriceInput,
        ),
        Tool(
            spec=ToolSpec(
                name="get_wallet_address",
                description="Get the public key of the connected wallet.",
                input_schema={
                    "parameters": {"type": "object", "properties": {}, "required": []},
                },
            ),
            handler=handle_get_wallet_address,
        ),
    ]

    registry = ToolRegistry(middlewares=[LoggingMiddleware()])
    for tool in tools:
        registry.register(tool)
    logger.debug(f"Created {len(tools)} tools for wallet {agent.wallet_address}")
    return registry
