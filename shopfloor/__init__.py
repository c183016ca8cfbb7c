"""
Shopfloor: machine shop inventory and machining itinerary generation.

The itinerary pipeline aggregates shop inventory, asks a language model for a
machining plan, and normalizes the reply into canonical steps with a
recomputed total cost.
"""
