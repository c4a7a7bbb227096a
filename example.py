import uuid

from wirecore import ComponentCollection, Environment, MissingComponent, ProfileActive, Scope


class SampleService:
    def __init__(self):
        self.id = uuid.uuid4()


class SingletonRepository(SampleService):
    pass


class RequestRepository(SampleService):
    pass


class PrototypeRepository(SampleService):
    pass


class Configuration:
    def __init__(self):
        self.connection_string = "test_connection_string"


class DatabaseService(SampleService):
    def __init__(self, configuration):
        super().__init__()
        self.connection_string = configuration.connection_string
        self.open = True

    def close(self):
        self.open = False


class CloudCache:
    pass


class LocalCache:
    pass


components = ComponentCollection()

components.add_singleton('configuration', Configuration)
components.add_singleton('singleton_repository', SingletonRepository)
components.add_prototype('prototype_repository', PrototypeRepository)
components.add_scoped('request_repository', RequestRepository)
components.add_singleton('database', DatabaseService, destroy=['close'])

# Profile-selected implementation with a fallback
components.add_singleton('cache', CloudCache, conditions=[ProfileActive(['cloud'])])
components.add_singleton('local_cache', LocalCache, conditions=[MissingComponent('cache')])

print("Component collection configured.")
print("Building container...")
container = components.build_container(Environment.from_os(profiles=['dev']))
print(f"Container built. Resolved order: {list(container.resolved_order)}")
print(f"Excluded: {container.excluded_ids()}")

print('Resolving singleton components')
singleton_one = container.get('singleton_repository')
singleton_two = container.get('singleton_repository')
print(f"Singleton One ID: {singleton_one.id}")
print(f"Singleton Two ID: {singleton_two.id}")
assert singleton_one is singleton_two, "Singleton instances should be the same."

print('Resolving prototype components')
prototype_one = container.get('prototype_repository')
prototype_two = container.get('prototype_repository')
print(f"Prototype One ID: {prototype_one.id}")
print(f"Prototype Two ID: {prototype_two.id}")
assert prototype_one.id != prototype_two.id, "Prototype instances should be different."

print('Resolving request components')
with container.create_scope() as scope_one:
    request_one = scope_one.get('request_repository')
    request_two = scope_one.get('request_repository')
    assert request_one is request_two, "Request instances should be the same within a scope."

with container.create_scope(Scope.Request) as scope_two:
    request_three = scope_two.get('request_repository')
    assert request_one is not request_three, "Request instances should differ across scopes."

print('Resolving the cache')
cache = container.get('local_cache')
print(f"Cache: {type(cache).__name__}")
assert container.was_excluded('cache'), "Cloud cache should be excluded outside the cloud profile."

database = container.get('database')
container.close()
assert not database.open, "Database should be closed with the container."

print("All checks passed.")
