"""
Async clients for Azure Event Hubs, Key Vault and Storage shared access signatures.

Subpackages:
    clients.eventhubs: Event Hubs producer and consumer over AMQP
    clients.keyvault: Key Vault secrets, keys, cryptography and certificates
    clients.storage: Storage account SAS generation and inspection
"""
