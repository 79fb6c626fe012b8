"""Agent self-selection router.

Broadcasts a request to every registered agent, collects the bids in
parallel, and picks a winner.  The router never tells an agent what to
take; it only reads the bids.

Selection rule
--------------
1. A bid strictly above ``clear_winner_threshold`` wins outright (the
   highest such bid, if several).
2. Otherwise the highest confidence wins; equal confidences go to the agent
   with the higher ``priority`` (the general-purpose default).

A bid whose backend call raised, returned unparsable output, or did not
arrive in time is replaced with a ``failed_bid_confidence`` bid.  It is
never excluded, so the router always produces a winner.
"""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from agent_choreography.domain.values import Bid
from agent_choreography.infrastructure.config import RouterConfig
from agent_choreography.infrastructure.llm import failure_metadata

logger = logging.getLogger(__name__)


class BiddingAgent(Protocol):
    """What the router needs from an agent."""

    @property
    def agent_id(self) -> str: ...

    @property
    def priority(self) -> int: ...

    def evaluate_request(self, content: str) -> Bid: ...


@dataclass(frozen=True)
class RoutingDecision:
    """Outcome of one bidding round."""

    selected: BiddingAgent
    bids: tuple[Bid, ...]
    clear_winner: bool

    @property
    def selected_bid(self) -> Bid:
        return next(b for b in self.bids if b.agent_id == self.selected.agent_id)

    def bid_map(self) -> dict[str, float]:
        return {b.agent_id: b.confidence for b in self.bids}


class AgentRouter:
    """Parallel bid fan-out and winner selection.

    Parameters
    ----------
    agents:
        Candidate agents.  Agent ids must be unique.
    config:
        Selection constants and the bidding-round timeout.
    """

    def __init__(
        self,
        agents: Sequence[BiddingAgent],
        config: RouterConfig | None = None,
    ) -> None:
        if not agents:
            raise ValueError("AgentRouter requires at least one agent")
        ids = [a.agent_id for a in agents]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate agent ids: {ids}")
        self._agents = list(agents)
        self.config = config or RouterConfig()
        self.config.validate()

    @property
    def agents(self) -> list[BiddingAgent]:
        return list(self._agents)

    def get_agent(self, agent_id: str) -> BiddingAgent | None:
        return next((a for a in self._agents if a.agent_id == agent_id), None)

    def _failed_bid(self, agent: BiddingAgent, exc: BaseException) -> Bid:
        logger.warning("AgentRouter: bid from %s failed: %s", agent.agent_id, exc)
        return Bid(
            agent_id=agent.agent_id,
            confidence=self.config.failed_bid_confidence,
            reasoning=f"Bid unavailable ({type(exc).__name__}); using default confidence",
            metadata=failure_metadata(exc),
        )

    def collect_bids(self, content: str) -> list[Bid]:
        """Ask every agent for a bid concurrently.

        Returns one bid per agent, in registration order.
        """
        pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=len(self._agents), thread_name_prefix="bid"
        )
        try:
            futures = [pool.submit(agent.evaluate_request, content) for agent in self._agents]
            concurrent.futures.wait(futures, timeout=self.config.bid_timeout)
            bids: list[Bid] = []
            for agent, future in zip(self._agents, futures):
                if not future.done():
                    future.cancel()
                    bids.append(self._failed_bid(
                        agent,
                        TimeoutError(f"no bid within {self.config.bid_timeout}s"),
                    ))
                    continue
                exc = future.exception()
                if exc is not None:
                    bids.append(self._failed_bid(agent, exc))
                    continue
                bid = future.result()
                if bid.agent_id != agent.agent_id:
                    bids.append(self._failed_bid(
                        agent, ValueError(f"bid tagged with foreign id {bid.agent_id!r}")
                    ))
                    continue
                bids.append(bid)
            return bids
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def select(self, bids: Sequence[Bid]) -> tuple[BiddingAgent, bool]:
        """Apply the selection rule to *bids*.

        Returns the winning agent and whether it was a clear winner.
        """
        priority = {a.agent_id: a.priority for a in self._agents}
        ranked = sorted(
            bids,
            key=lambda b: (b.confidence, priority.get(b.agent_id, 0)),
            reverse=True,
        )
        best = ranked[0]
        clear = best.confidence > self.config.clear_winner_threshold
        agent = self.get_agent(best.agent_id)
        if agent is None:
            raise ValueError(f"Bid from unknown agent {best.agent_id!r}")
        return agent, clear

    def route(self, content: str) -> RoutingDecision:
        """Run one bidding round for *content* and select a winner."""
        bids = self.collect_bids(content)
        selected, clear = self.select(bids)
        logger.info(
            "AgentRouter: selected %s (%s) from bids %s",
            selected.agent_id,
            "clear winner" if clear else "highest bid",
            {b.agent_id: round(b.confidence, 2) for b in bids},
        )
        return RoutingDecision(selected=selected, bids=tuple(bids), clear_winner=clear)
