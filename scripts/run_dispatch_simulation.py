import json
import logging
import os
import sys
import time

from dispatch.events import DispatchEvent, EventBus
from dispatch.pack_workflow import PackSessionTracker
from orders.batching import BatchOptimizer, CountyAdjacency, policy_from_env
from orders.loader import load_orders_csv
from orders.models import PackStatus
from orders.queue import DispatchQueue


def main(filepath="orders_generated.csv"):
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    absolute_path = filepath if os.path.isabs(filepath) else os.path.join(base_dir, filepath)
    if not os.path.exists(absolute_path):
        print(f"❌ {absolute_path} not found. Run scripts/generate_mock_data.py first.")
        return 1

    events = EventBus()
    events.subscribe(DispatchEvent.PACK_COMPLETED, lambda p: print(f"📦 {p['order_number']} dispatched"))
    events.subscribe(DispatchEvent.BATCH_DETECTED, lambda p: print(f"🎯 batch opportunities for {p['order_number']}"))

    queue = DispatchQueue()
    queue.load_orders(load_orders_csv(absolute_path))

    started = time.perf_counter()
    queue.recompute()
    print(f"\n⏱️ First recompute: {(time.perf_counter() - started) * 1000:.1f}ms")
    started = time.perf_counter()
    queue.recompute()
    print(f"⏱️ Repeat recompute: {(time.perf_counter() - started) * 1000:.1f}ms")

    print("\nTop 5 orders:")
    top = queue.top_n(5)
    for row in top:
        o = row.order
        print(f"  #{row.priority_rank} {o.order_number}  DPS {o.dps_score:6.2f}  {row.urgency_level.value:<8} {row.time_to_dispatch}")

    if not top:
        return 0

    optimizer = BatchOptimizer(policy=policy_from_env(), adjacency=CountyAdjacency.from_env(), events=events)
    target = top[0].order
    analysis = optimizer.find_batch_opportunities(target, queue.orders())
    print(f"\nBatch analysis for {target.order_number}: {len(analysis.opportunities)} opportunities")
    for rec in analysis.opportunities[:3]:
        e = rec.efficiency
        print(f"  #{rec.rank} {rec.strategy:<24} {len(rec.orders)} orders  saves {e.time_savings:.1f} min ({e.efficiency_gain:.1f}%)")
    if analysis.reason:
        print(f"  reason: {analysis.reason}")

    tracker = PackSessionTracker(
        queue.get_order,
        events=events,
        batch_optimizer=optimizer,
        candidate_pool=queue.orders,
    )
    order_number = target.order_number
    tracker.start(order_number, worker_name="Alex")
    for status in (PackStatus.PACKING, PackStatus.PACKED, PackStatus.DISPATCHED):
        tracker.update_status(order_number, status)

    print("\nPack workflow snapshot:")
    print(json.dumps(tracker.export_state(), indent=2))
    print("\nQueue performance:")
    print(json.dumps(queue.performance_metrics(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main(*sys.argv[1:]))
