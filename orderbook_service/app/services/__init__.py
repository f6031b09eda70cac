"""Domain and read services for the Orderbook Service."""
