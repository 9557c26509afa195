# ai_cost_meter/demo/seed_demo_data.py

from ai_cost_meter.config.loader import StoreConfig
from ai_cost_meter.optimizer import CostOptimizer, build_store

optimizer = CostOptimizer(store=build_store(StoreConfig()))

usage = [
    ("demo_user", "basic", "summarization", 1200, 300),
    ("demo_user", "basic", "summarization", 4000, 1000),
    ("demo_user", "basic", "textGeneration", 800, 400),
    ("free_user", "free", "textGeneration", 300, 120),
]

for user_id, tier, use_case, input_units, output_units in usage:
    optimizer.track_usage(user_id, tier, use_case, input_units, output_units)

print("Demo usage data recorded")
