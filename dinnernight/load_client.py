#!/usr/bin/env python3
"""
Dinner Night load client (async)

Every simulated buyer walks the MockPay purchase flow:
  1) POST /api/orders                -> {order_id, reference}
  2) POST /mockpay/{reference}/emit  (t=success|failed); the server fires
     the signed webhook at itself
  3) POST /api/payments/verify       (races the webhook on purpose)
  4) GET  /api/orders/{order_id}?reference=...  until it leaves
     "pending"

At the end the client checks that no ticket code was handed to two orders
and exits non-zero if one was.

Usage:
  dinnernight-load --base http://localhost:8000 --total 200 --concurrency 50
"""

import argparse
import asyncio
import json
import random
import statistics
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import httpx

CATEGORIES = ("regular", "couples", "vip", "sponsors")


class Outcome(str, Enum):
    CONFIRMED = "confirmed"
    PAYMENT_FAILED = "payment_failed"
    SOLD_OUT = "sold_out"
    TIMEOUT = "timeout"
    ERROR = "error"


class StepFailed(Exception):
    pass


@dataclass
class Buyer:
    quantity: int
    category: str
    pay: bool
    email: str = field(
        default_factory=lambda: f"load-{uuid.uuid4().hex[:10]}@example.com"
    )


@dataclass
class Trace:
    buyer: Buyer
    outcome: Outcome = Outcome.ERROR
    codes: List[int] = field(default_factory=list)
    # seconds per step
    steps: Dict[str, float] = field(default_factory=dict)
    err: Optional[str] = None

    @property
    def to_confirmation(self) -> float:
        return sum(self.steps.values())


class LoadRun:
    def __init__(self, client: httpx.AsyncClient, base: str,
                 poll_interval_s: float, poll_timeout_s: float):
        self.client = client
        self.base = base.rstrip("/")
        self.poll_interval_s = poll_interval_s
        self.poll_timeout_s = poll_timeout_s
        self.traces: List[Trace] = []

    async def _call(self, trace: Trace, step: str, method: str, path: str,
                    **kw) -> httpx.Response:
        t0 = time.perf_counter()
        try:
            resp = await self.client.request(method, self.base + path,
                                             timeout=30.0, **kw)
        except httpx.HTTPError as e:
            raise StepFailed(f"{step}: {e!r}")
        finally:
            trace.steps[step] = (trace.steps.get(step, 0.0)
                                 + time.perf_counter() - t0)
        if resp.status_code >= 500:
            raise StepFailed(f"{step}: HTTP {resp.status_code}")
        return resp

    async def buy(self, buyer: Buyer) -> Trace:
        trace = Trace(buyer)
        try:
            trace.outcome = await self._buy(buyer, trace)
        except StepFailed as e:
            trace.err = str(e)
        self.traces.append(trace)
        return trace

    async def _buy(self, buyer: Buyer, trace: Trace) -> Outcome:
        resp = await self._call(trace, "order", "POST", "/api/orders", json={
            "customer_name": "Load Tester",
            "customer_email": buyer.email,
            "customer_phone": "08000000000",
            "items": [{"category": buyer.category,
                       "quantity": buyer.quantity}],
        })
        if resp.status_code == 409:
            return Outcome.SOLD_OUT
        if resp.status_code != 200:
            raise StepFailed(f"order: HTTP {resp.status_code}")
        created = resp.json()

        resp = await self._call(
            trace, "emit", "POST", f"/mockpay/{created['reference']}/emit",
            data={"t": "success" if buyer.pay else "failed"},
        )
        if resp.status_code != 200:
            raise StepFailed(f"emit: HTTP {resp.status_code}")

        resp = await self._call(trace, "verify", "POST",
                                "/api/payments/verify",
                                json={"reference": created["reference"]})
        if resp.status_code == 402:
            return Outcome.PAYMENT_FAILED
        if resp.status_code == 409:
            return Outcome.SOLD_OUT

        order = await self._poll(trace, created["order_id"],
                                 created["reference"])
        if order is None:
            return Outcome.TIMEOUT
        if order["status"] != "confirmed":
            raise StepFailed(f"poll: order ended {order['status']}")
        trace.codes = [c for item in order["items"]
                       for c in item["ticket_codes"]]
        if len(trace.codes) != buyer.quantity:
            raise StepFailed(
                f"expected {buyer.quantity} codes, got {len(trace.codes)}"
            )
        return Outcome.CONFIRMED

    async def _poll(self, trace: Trace, order_id: str,
                    reference: str) -> Optional[dict]:
        deadline = time.perf_counter() + self.poll_timeout_s
        while time.perf_counter() < deadline:
            resp = await self._call(trace, "poll", "GET",
                                    f"/api/orders/{order_id}",
                                    params={"reference": reference})
            if resp.status_code == 200 and resp.json()["status"] != "pending":
                return resp.json()
            await asyncio.sleep(self.poll_interval_s)
        return None

    # ---- reporting

    def duplicate_codes(self) -> Dict[int, int]:
        seen = Counter(c for t in self.traces for c in t.codes)
        return {code: n for code, n in seen.items() if n > 1}

    def summary(self, elapsed_s: float) -> dict:
        outcomes = Counter(t.outcome.value for t in self.traces)
        confirmed = sorted(t.to_confirmation for t in self.traces
                           if t.outcome == Outcome.CONFIRMED)
        latency = {"avg": 0.0, "p50": 0.0, "p90": 0.0, "p99": 0.0}
        if confirmed:
            latency["avg"] = statistics.mean(confirmed)
            if len(confirmed) > 1:
                q = statistics.quantiles(confirmed, n=100,
                                         method="inclusive")
                latency.update(p50=q[49], p90=q[89], p99=q[98])
            else:
                latency.update(p50=confirmed[0], p90=confirmed[0],
                               p99=confirmed[0])
        errors = Counter(t.err.split(":")[0] for t in self.traces if t.err)
        return {
            "total": len(self.traces),
            "outcomes": {o.value: outcomes.get(o.value, 0)
                         for o in Outcome},
            "tickets": sum(len(t.codes) for t in self.traces),
            "duplicate_codes": sorted(self.duplicate_codes()),
            "errors": dict(errors),
            "latency_s": latency,
            "elapsed_s": elapsed_s,
            "orders_per_s": len(self.traces) / elapsed_s if elapsed_s else 0,
        }


def print_summary(s: dict) -> None:
    print("\n=== Load Summary ===")
    print("   ".join(f"{k}: {v}" for k, v in s["outcomes"].items()))
    print(f"tickets issued: {s['tickets']}   "
          f"duplicate codes: {len(s['duplicate_codes'])}")
    if s["duplicate_codes"]:
        print(f"  !! codes on more than one order: "
              f"{s['duplicate_codes'][:20]}")
    if s["errors"]:
        print(f"errors by step: {s['errors']}")
    lat = s["latency_s"]
    print(f"order -> confirmed: avg {lat['avg']:.3f}s   "
          f"p50 {lat['p50']:.3f}s   p90 {lat['p90']:.3f}s   "
          f"p99 {lat['p99']:.3f}s")
    print(f"wall time: {s['elapsed_s']:.3f}s   "
          f"throughput: {s['orders_per_s']:.1f} orders/s")


async def run_load(args) -> LoadRun:
    limits = httpx.Limits(max_keepalive_connections=args.concurrency,
                          max_connections=args.concurrency)
    sem = asyncio.Semaphore(args.concurrency)
    async with httpx.AsyncClient(
        limits=limits, headers={"User-Agent": "DinnerNightLoad/1.0"}
    ) as client:
        run = LoadRun(client, args.base, args.poll_interval,
                      args.poll_timeout)

        async def worker():
            buyer = Buyer(
                quantity=random.randint(1, max(1, args.max_quantity)),
                category=random.choice(CATEGORIES),
                pay=random.random() >= args.fail_rate,
            )
            async with sem:
                await run.buy(buyer)

        await asyncio.gather(*(worker() for _ in range(args.total)))
    return run


def main():
    ap = argparse.ArgumentParser(description="Dinner Night load client")
    ap.add_argument("--base", default="http://localhost:8000",
                    help="Base URL of the app")
    ap.add_argument("--total", type=int, default=100,
                    help="Total orders to run")
    ap.add_argument("--concurrency", type=int, default=20,
                    help="Concurrent buyers")
    ap.add_argument("--max-quantity", type=int, default=3,
                    help="Upper bound of tickets per order")
    ap.add_argument("--fail-rate", type=float, default=0.0,
                    help="Fraction of payments to mark as failed")
    ap.add_argument("--poll-interval", type=float, default=0.05,
                    help="Seconds between status polls")
    ap.add_argument("--poll-timeout", type=float, default=10.0,
                    help="Max seconds to wait for confirmation")
    ap.add_argument("--json", action="store_true",
                    help="Print the summary as JSON")
    args = ap.parse_args()

    t_start = time.perf_counter()
    run = asyncio.run(run_load(args))
    summary = run.summary(time.perf_counter() - t_start)
    if args.json:
        print(json.dumps(summary, indent=2))
    else:
        print_summary(summary)
    if summary["duplicate_codes"]:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
