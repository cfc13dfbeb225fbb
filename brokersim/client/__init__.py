"""Client workload generation."""

from brokersim.client.wandering import WanderingClient, create_clients, generate_random_strings

__all__ = ['WanderingClient', 'create_clients', 'generate_random_strings']
