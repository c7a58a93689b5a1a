"""
TryHarder Probe Engine

The one generic engine every tool runs through. A tool supplies the
strategy (target validation, candidates, scoring, tie-break); the engine
supplies everything else:
1. Target validation and the single-flight guard
2. Baseline capture
3. Candidate dispatch through the scheduler, phase by phase
4. Differential comparison and classification of every response
5. Deduplicated, ordered findings and the terminal ToolRun
"""

from typing import Any, Callable, Dict, Mapping, Optional, Type, Union
import asyncio
import logging
import traceback

from tryharder.config import Settings, get_settings
from tryharder.engine import candidates as candidate_gen
from tryharder.engine.errors import ConfigurationError, UnknownToolError
from tryharder.engine.models import Finding, ProbeDescriptor, ResponseRecord, RunStatus, ToolRun
from tryharder.engine.parser import PageContent
from tryharder.engine.requester import EgressClient, Transport
from tryharder.engine.scheduler import CancelToken, ProbeScheduler
from tryharder.engine.signatures import SignatureRegistry, default_registry
from tryharder.engine.sink import FindingSink
from tryharder.engine.store import ResultStore

logger = logging.getLogger(__name__)


class ProbeEngine:
    """
    Runs tools against targets.

    Features:
    - Injected result store (single-flight per tool id)
    - Injected transport, or a fresh aiohttp transport per run
    - Explicit cancel tokens, one per active run
    - Progress and finding callbacks for live presentation
    - Graceful failure: unexpected errors end the run as ``failed``
    """

    def __init__(
            self,
            store: Optional[ResultStore] = None,
            settings: Optional[Settings] = None,
            transport: Optional[Transport] = None,
            registry: Optional[SignatureRegistry] = None,
            tools: Optional[Mapping[str, Type]] = None,
            progress_callback: Optional[Callable[[Dict], None]] = None,
            finding_callback: Optional[Callable[[Finding], None]] = None
    ):
        """
        Initialize the engine.

        Args:
            store: Result store; a private one is created when omitted
            settings: Probe settings; the process-wide settings when omitted
            transport: ``proxy_fetch`` implementation shared by every run
            registry: Signature banks; the built-in registry when omitted
            tools: Tool id -> tool class; the built-in tools when omitted
            progress_callback: Called after every dispatched candidate
            finding_callback: Called for every new finding
        """
        self.store = store or ResultStore()
        self.settings = settings
        self.transport = transport
        self.registry = registry or default_registry()
        self.progress_callback = progress_callback
        self.finding_callback = finding_callback

        if tools is None:
            from tryharder.tools import TOOLS
            tools = TOOLS
        self.tools: Dict[str, Type] = dict(tools)

        self._tokens: Dict[str, CancelToken] = {}

    def get_tool(self, tool_id: str):
        """Instantiate a registered tool."""
        try:
            return self.tools[tool_id]()
        except KeyError:
            raise UnknownToolError(tool_id) from None

    async def run(
            self,
            tool: Union[str, Any],
            options: Optional[Mapping[str, Any]] = None,
            cancel_token: Optional[CancelToken] = None,
            page: Optional[PageContent] = None
    ) -> ToolRun:
        """
        Execute one tool run.

        Args:
            tool: Tool id or tool instance
            options: Tool options, including the target input
            cancel_token: Caller-held cancellation handle
            page: Page-content collaborator for content-analysis tools

        Returns:
            The terminal ToolRun

        Raises:
            UnknownToolError: Tool id is not registered
            ConfigurationError: Target input missing or invalid
            ToolBusyError: The tool already has an active run
        """
        if isinstance(tool, str):
            tool = self.get_tool(tool)

        options = tool.resolve_options(options)
        target = tool.validate(options)
        run = self.store.begin(tool.name, target)

        cancel_token = cancel_token or CancelToken()
        self._tokens[tool.name] = cancel_token
        client = None
        owns_client = False
        scheduler = None
        sink = FindingSink(tie_break=tool.sort_key, on_finding=self.finding_callback)

        logger.info(f"Starting {tool.name} against {target}")

        try:
            settings = self.settings or get_settings()
            if self.transport is not None:
                client = EgressClient(self.transport, settings)
            else:
                client = EgressClient.from_settings(settings)
                owns_client = True

            from tryharder.tools.base import RunContext
            ctx = RunContext(
                tool=tool.name,
                target=target,
                options=options,
                settings=settings,
                client=client,
                registry=self.registry,
                page=page
            )
            scheduler = ProbeScheduler(client)

            await tool.prepare(ctx)

            if ctx.aborted:
                run.finish(RunStatus.COMPLETED, [], message=ctx.message)
                logger.info(f"{tool.name}: {ctx.message}")
                return run

            await self._dispatch_phases(tool, ctx, scheduler, sink, cancel_token)

            if cancel_token.cancelled:
                run.finish(RunStatus.CANCELLED, sink.drain(), message=cancel_token.reason or '')
            else:
                sink.extend(tool.finalize(ctx))
                run.finish(RunStatus.COMPLETED, sink.drain(), message=ctx.message)

            counts = run.summary()
            logger.info(
                f"{tool.name} {run.status.value}: {scheduler.dispatched} requests, "
                f"{counts['total']} findings ({counts['critical']} critical, {counts['high']} high)"
            )

        except asyncio.CancelledError:
            # The caller's task was cancelled: keep what was classified so far
            if not cancel_token.cancelled:
                cancel_token.cancel('Task cancelled')
            logger.info(f"{tool.name} task cancelled")
            run.finish(RunStatus.CANCELLED, sink.drain(), message=cancel_token.reason or '')
            raise

        except ConfigurationError as e:
            run.finish(RunStatus.FAILED, sink.drain(), error=str(e))
            raise

        except Exception as e:
            logger.error(f"{tool.name} run error: {e}\n{traceback.format_exc()}")
            run.finish(RunStatus.FAILED, sink.drain(), error=str(e))

        finally:
            if not run.is_terminal:
                # BaseException other than cancellation, e.g. KeyboardInterrupt
                run.finish(RunStatus.CANCELLED, sink.drain(), message='Interrupted')
            if scheduler is not None:
                run.dispatched = scheduler.dispatched
            self._tokens.pop(tool.name, None)
            if owns_client:
                await client.close()

        return run

    async def _dispatch_phases(self, tool, ctx, scheduler: ProbeScheduler,
                               sink: FindingSink, cancel_token: CancelToken):
        """Dispatch the first phase and every follow-up phase until one comes back empty."""
        policy = tool.policy(ctx.settings)
        sent = set()
        phase = 0
        batch = tool.candidates(ctx)

        while batch and not cancel_token.cancelled:
            # never resend a request already dispatched in an earlier phase
            fresh = [d for d in candidate_gen.dedupe(batch) if d.key not in sent]
            batch = candidate_gen.finalize(tool.name, fresh, start=len(sent))
            sent.update(d.key for d in batch)
            phase += 1
            logger.debug(f"{tool.name} phase {phase}: {len(batch)} candidates")

            async for descriptor, response in scheduler.run(
                    batch, policy, cancel_token, skip=lambda d: tool.should_skip(ctx, d)):
                sink.extend(self._evaluate(tool, ctx, descriptor, response))
                self._update_progress(tool.name, phase, scheduler.dispatched, len(sink))

            if cancel_token.cancelled:
                break
            batch = tool.follow_up(ctx)

    def _evaluate(self, tool, ctx, descriptor: ProbeDescriptor, response: ResponseRecord):
        try:
            return tool.evaluate(ctx, descriptor, response) or []
        except Exception as e:
            logger.error(f"{tool.name} evaluation error on {descriptor.url}: {e}")
            return []

    def _update_progress(self, tool: str, phase: int, dispatched: int, findings: int):
        if self.progress_callback:
            self.progress_callback({
                'tool': tool,
                'phase': phase,
                'dispatched': dispatched,
                'findings': findings
            })

    def cancel(self, tool: str) -> bool:
        """Cancel the active run of a tool. Returns False when none is running."""
        token = self._tokens.get(tool)
        if token is None:
            return False
        token.cancel()
        return True

    def is_running(self, tool: str) -> bool:
        return self.store.is_running(tool)

    def latest(self, tool: str) -> Optional[ToolRun]:
        return self.store.latest(tool)

    def reset(self, tool: Optional[str] = None):
        self.store.reset(tool)
