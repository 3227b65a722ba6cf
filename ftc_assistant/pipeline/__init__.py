"""
Pipeline modules for the 3-stage RAG architecture.

Stage 1: Planning        (planner.py, model_selector.py)
Stage 2: Retrieval       (retrieval.py)
Stage 3: Answer          (response_generator.py)
Delivery:                (streaming.py)

Orchestrated by: orchestrator.py
"""
