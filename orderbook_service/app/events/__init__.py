"""
Events module for the Orderbook Service.

Request events are published by the API layer on the request topics and
consumed by the event processor, which writes the store and answers each
recognised request with exactly one outcome event on the paired outcome
topic. Outcome events are fanned out to WebSocket clients by the realtime
broadcaster.

Request topics: customer-events, item-events, order-events
Outcome topics: customer-updates, item-updates, order-updates
"""
