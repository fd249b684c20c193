"""
Backend HTTP server for the Store P&L Anomaly Copilot.

Serves the dashboard's read endpoints, anomaly detection, and narration over
plain JSON. Routing lives in FinancialAPI so it can be exercised without a
socket; BackendHandler only moves bytes.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlparse

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError

from backend.narration_service import NarrationService, create_narration_service
from llm.schema import Narration, QuerySpec, QueryType
from src.anomaly import AnomalyEngine, AnomalyRecord, AnomalySeverity, AnomalySummary, summarize
from src.core.config import config
from src.core.exceptions import ConfigurationError
from src.core.logging_config import setup_logging
from src.data import DataIngestionError, FinancialRepository, load_financial_dataset

load_dotenv()

logger = logging.getLogger("backend")

Response = Tuple[int, Dict[str, Any]]

DEFAULT_RANKING_LIMIT = 10


def _model_path() -> Optional[str]:
    return os.getenv("MODEL_PATH")


def _to_frontend(model: Optional[BaseModel]) -> Optional[Dict[str, Any]]:
    if model is None:
        return None
    return model.model_dump(mode="json", by_alias=True)


def _anomaly_to_frontend(record: AnomalyRecord) -> Dict[str, Any]:
    return {
        "storeName": record.store_name,
        "type": record.type.value,
        "metric": record.metric,
        "value": record.value,
        "threshold": record.threshold,
        "severity": record.severity.value,
    }


def _anomaly_from_frontend(item: Dict[str, Any]) -> AnomalyRecord:
    return AnomalyRecord(
        store_name=item.get("storeName", item.get("store_name")),
        type=item.get("type"),
        metric=item.get("metric"),
        value=item.get("value"),
        threshold=item.get("threshold"),
        severity=item.get("severity"),
    )


def _summary_to_frontend(summary: AnomalySummary) -> Dict[str, Any]:
    return {
        "total": summary.total,
        "high": summary.by_severity[AnomalySeverity.HIGH],
        "medium": summary.by_severity[AnomalySeverity.MEDIUM],
        "low": summary.by_severity[AnomalySeverity.LOW],
        "byType": {kind.value: count for kind, count in summary.by_type.items()},
    }


def _narration_to_frontend(narration: Narration) -> Dict[str, Any]:
    return {
        "text": narration.text,
        "source": narration.source.value,
        "limitations": narration.limitations,
    }


class FinancialAPI:
    """
    Route table for the dashboard API.

    Every handler returns (status, payload). Missing data yields empty
    payloads rather than errors, so the UI can render an empty state.
    """

    def __init__(
        self,
        repository: FinancialRepository,
        engine: Optional[AnomalyEngine] = None,
        narration: Optional[NarrationService] = None,
    ) -> None:
        self.repository = repository
        self.engine = engine or AnomalyEngine()
        self._narration = narration

    @property
    def narration(self) -> NarrationService:
        if self._narration is None:
            self._narration = _narration_service()
        return self._narration

    def handle(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Response:
        parsed = urlparse(path)
        parts = [unquote(p) for p in parsed.path.strip("/").split("/") if p]
        query = {k: v[-1] for k, v in parse_qs(parsed.query).items()}

        if method == "GET":
            return self._get(parts, query)
        if method == "POST":
            return self._post(parts, body or {})
        return 405, {"detail": "Method not allowed"}

    def _get(self, parts: List[str], query: Dict[str, str]) -> Response:
        if parts == ["health"]:
            return 200, {"status": "ok", "store_count": len(self.repository.store_names())}
        if parts == ["stores"]:
            return 200, {"stores": [_to_frontend(s) for s in self.repository.all_stores()]}
        if len(parts) == 2 and parts[0] == "stores":
            return self._store_detail(parts[1])
        if parts == ["rankings"]:
            return self._rankings(query)
        if parts == ["variance", "company"]:
            return 200, {"variance": [_to_frontend(v) for v in self.repository.company_variance()]}
        if len(parts) == 3 and parts[:2] == ["variance", "store"]:
            rows = self.repository.variance_by_store(parts[2])
            return 200, {"variance": [_to_frontend(v) for v in rows]}
        if len(parts) == 3 and parts[:2] == ["variance", "line-item"]:
            rows = self.repository.variance_by_line_item(parts[2])
            return 200, {"variance": [_to_frontend(v) for v in rows]}
        if parts == ["pivot"]:
            return 200, {"pivot": [_to_frontend(p) for p in self.repository.pivot_data()]}
        if parts == ["metrics"]:
            return 200, {"metrics": _to_frontend(self.repository.aggregate_metrics())}
        if parts == ["anomalies"]:
            return self._anomalies()
        if parts == ["ai", "history"]:
            return self._history(query)
        return 404, {"detail": "Not found"}

    def _post(self, parts: List[str], body: Dict[str, Any]) -> Response:
        if parts == ["ai", "explain-anomalies"]:
            return self._explain_anomalies(body)
        if parts == ["ai", "chat"]:
            return self._chat(body)
        if parts == ["ai", "store-insights"]:
            return self._store_insights(body)
        if parts == ["ai", "nl-query"]:
            return self._nl_query(body)
        return 404, {"detail": "Not found"}

    def _store_detail(self, name: str) -> Response:
        store = self.repository.store_by_name(name)
        if store is None:
            return 404, {"detail": f"Unknown store: {name}"}
        variance = self.repository.variance_by_store(name)
        return 200, {"store": _to_frontend(store), "variance": [_to_frontend(v) for v in variance]}

    def _rankings(self, query: Dict[str, str]) -> Response:
        metric = query.get("metric", "sales")
        order = query.get("order", "top")
        if order not in {"top", "bottom"}:
            return 400, {"detail": "order must be 'top' or 'bottom'"}
        try:
            limit = int(query.get("limit", DEFAULT_RANKING_LIMIT))
        except ValueError:
            return 400, {"detail": "limit must be an integer"}

        if order == "top":
            stores = self.repository.top_stores(metric, limit)
        else:
            stores = self.repository.bottom_stores(metric, limit)
        return 200, {"stores": [_to_frontend(s) for s in stores]}

    def _anomalies(self) -> Response:
        records = self.engine.detect(self.repository.all_stores())
        return 200, {
            "anomalies": [_anomaly_to_frontend(r) for r in records],
            "summary": _summary_to_frontend(summarize(records)),
            "total_count": len(records),
        }

    def _history(self, query: Dict[str, str]) -> Response:
        raw = query.get("user_id")
        try:
            user_id = int(raw) if raw is not None else None
        except ValueError:
            return 400, {"detail": "user_id must be an integer"}
        messages = self.repository.chat_history(user_id)
        return 200, {"messages": [_to_frontend(m) for m in messages]}

    def _explain_anomalies(self, body: Dict[str, Any]) -> Response:
        items = body.get("anomalies")
        if items is None:
            records = self.engine.detect(self.repository.all_stores())
        elif not isinstance(items, list):
            return 400, {"detail": "anomalies must be a list"}
        else:
            try:
                records = [_anomaly_from_frontend(item) for item in items]
            except (AttributeError, ValidationError) as exc:
                return 400, {"detail": f"Invalid anomaly payload: {exc}"}

        narration = self.narration.explain_anomalies(records)
        return 200, _narration_to_frontend(narration)

    def _chat(self, body: Dict[str, Any]) -> Response:
        message = body.get("message")
        if not isinstance(message, str) or not message.strip():
            return 400, {"detail": "message is required"}
        user_id = body.get("user_id")
        if user_id is not None and not isinstance(user_id, int):
            return 400, {"detail": "user_id must be an integer"}

        narration = self.narration.chat(
            message,
            metrics=self.repository.aggregate_metrics(),
            top_by_sales=self.repository.top_stores("sales", 10),
            bottom_by_net_profit=self.repository.bottom_stores("netProfit", 10),
            company_variance=self.repository.company_variance(),
            context=body.get("context"),
        )
        self.repository.save_chat_message(user_id, "user", message)
        self.repository.save_chat_message(user_id, "assistant", narration.text)
        return 200, _narration_to_frontend(narration)

    def _store_insights(self, body: Dict[str, Any]) -> Response:
        name = body.get("storeName")
        store = self.repository.store_by_name(name) if isinstance(name, str) else None
        if store is None:
            return 404, {"detail": "Store not found."}
        narration = self.narration.store_insights(
            store,
            self.repository.variance_by_store(store.store_name),
            self.repository.aggregate_metrics(),
        )
        return 200, _narration_to_frontend(narration)

    def _nl_query(self, body: Dict[str, Any]) -> Response:
        text = body.get("query")
        if not isinstance(text, str) or not text.strip():
            return 400, {"detail": "query is required"}

        query_spec = self.narration.translate_query(text, self.repository.store_names())
        if query_spec is None:
            return 200, {"query": None, "data": [], "error": "Could not parse query"}

        data = self._query_data(query_spec)
        return 200, {
            "query": query_spec.model_dump(mode="json", by_alias=True),
            "data": [_to_frontend(s) for s in data],
        }

    def _query_data(self, query_spec: QuerySpec) -> list:
        if query_spec.stores:
            wanted = set(query_spec.stores)
            return [s for s in self.repository.all_stores() if s.store_name in wanted]
        if query_spec.query_type == QueryType.RANKING:
            limit = query_spec.limit or DEFAULT_RANKING_LIMIT
            if query_spec.sort_order == "desc":
                return self.repository.top_stores(query_spec.metric, limit)
            return self.repository.bottom_stores(query_spec.metric, limit)
        return self.repository.all_stores()


def _narration_service() -> NarrationService:
    model_path = _model_path()
    try:
        service = create_narration_service(model_path)
    except ConfigurationError as exc:
        logger.warning("%s; serving fallback narration", exc)
        return NarrationService()
    logger.info("Narration model configured from %s", model_path)
    return service


def _load_repository(data_path: Optional[Path]) -> FinancialRepository:
    repository = FinancialRepository()
    if data_path is None:
        logger.warning("No dataset configured (PNL_DATA_PATH); serving an empty snapshot")
        return repository
    try:
        repository.load(load_financial_dataset(data_path))
    except DataIngestionError as exc:
        logger.error("Dataset load failed: %s; serving an empty snapshot", exc)
    return repository


def _decode_body(length_header: Optional[str], stream: BinaryIO) -> Optional[Dict[str, Any]]:
    """
    JSON object request body, or None when the body is empty.

    Raises:
        ValueError: if Content-Length is not a number or the body is not a JSON object
    """
    try:
        length = int(length_header or "0")
    except ValueError as exc:
        raise ValueError(f"Invalid Content-Length: {length_header!r}") from exc
    if length <= 0:
        return None
    try:
        payload = json.loads(stream.read(length).decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValueError(f"Request body is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    return payload


class BackendHandler(BaseHTTPRequestHandler):
    server_version = "PnlCopilot/1.0"
    api: FinancialAPI

    def _send_json(self, status: int, payload: Dict[str, Any]) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self._cors_headers()
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _cors_headers(self) -> None:
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")

    def do_GET(self) -> None:
        self._send_json(*self.api.handle("GET", self.path))

    def do_POST(self) -> None:
        try:
            body = _decode_body(self.headers.get("Content-Length"), self.rfile)
        except ValueError as exc:
            self._send_json(400, {"detail": str(exc)})
            return
        self._send_json(*self.api.handle("POST", self.path, body))

    def do_OPTIONS(self) -> None:
        self.send_response(204)
        self._cors_headers()
        self.end_headers()


def run(host: str, port: int, data_path: Optional[Path]) -> None:
    for name in ("backend", "src", "llm"):
        setup_logging(name)

    BackendHandler.api = FinancialAPI(repository=_load_repository(data_path))
    logger.info("Starting backend server on %s:%s", host, port)
    logger.info("MODEL_PATH=%s", _model_path() or "<not set>")
    server = ThreadingHTTPServer((host, port), BackendHandler)
    server.serve_forever()


def main() -> None:
    parser = argparse.ArgumentParser(description="Store P&L Anomaly Copilot backend server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--data", type=Path, default=config.data_path, help="Dataset file (JSON or CSV)")
    args = parser.parse_args()

    run(args.host, args.port, args.data)


if __name__ == "__main__":
    main()
