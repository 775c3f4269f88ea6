"""HTTP ingestion gateway: accepts call sequences and exposes the accumulated graph."""

from __future__ import annotations

import json
import logging

from flask import Blueprint, Response, jsonify, request, stream_with_context

from call_graph_live.analysis.export import FLOWCHART_DIRECTIONS, export_flow_diagram, state_to_payload
from call_graph_live.analysis.models import CallSequence, MalformedSubmission
from call_graph_live.pipelines.session import VisualizationSession

LOGGER = logging.getLogger(__name__)

STREAM_EVENT = "newStackFrame"
MERMAID_FILENAME = "graph-flowchart.md"


def _sse(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


def create_gateway(
    session: VisualizationSession,
    *,
    stream_queue_size: int = 256,
    keepalive_seconds: float = 15.0,
) -> Blueprint:
    """Build the blueprint serving ``/api/*`` for ``session``."""

    gateway = Blueprint("gateway", __name__, url_prefix="/api")

    @gateway.after_request
    def allow_any_origin(response: Response) -> Response:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        return response

    @gateway.route("/stackframes", methods=["POST", "OPTIONS"])
    def receive_stackframes():
        if request.method == "OPTIONS":
            return Response(status=204)

        payload = request.get_json(silent=True)
        try:
            sequence = CallSequence.from_payload(payload)
        except MalformedSubmission as exc:
            LOGGER.warning("Rejected submission from %s: %s", request.remote_addr, exc)
            return jsonify({"error": "Invalid stack frame data", "detail": str(exc)}), 400

        delivered = session.publish(sequence)
        return jsonify({"message": "Stack frame data received and broadcast", "subscribers": delivered}), 200

    @gateway.get("/graph")
    def graph_snapshot():
        return jsonify(state_to_payload(session.snapshot()))

    @gateway.get("/graph/mermaid")
    def graph_mermaid():
        direction = request.args.get("direction", "TD").upper()
        if direction not in FLOWCHART_DIRECTIONS:
            return jsonify({"error": f"Unsupported direction: {direction}"}), 400
        text = export_flow_diagram(session.snapshot(), direction=direction)
        return Response(
            text,
            mimetype="text/plain",
            headers={"Content-Disposition": f"attachment; filename={MERMAID_FILENAME}"},
        )

    @gateway.post("/graph/reset")
    def graph_reset():
        session.reset()
        return jsonify({"message": "Call graph cleared"}), 200

    @gateway.get("/stream")
    def stream():
        subscription = session.broadcaster.open_stream(stream_queue_size)

        def events():
            try:
                yield ": connected\n\n"
                for sequence in subscription.iter(timeout=keepalive_seconds):
                    if sequence is None:
                        yield ": keep-alive\n\n"
                        continue
                    yield _sse(STREAM_EVENT, json.dumps(sequence.to_payload()))
            finally:
                subscription.close()

        return Response(
            stream_with_context(events()),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return gateway


__all__ = ["MERMAID_FILENAME", "STREAM_EVENT", "create_gateway"]
