"""Posts with threaded comments: storage back ends, cursor pagination, batched loading, resolvers and subscriptions."""

__version__ = "0.1.0"