"""A bounded table for caching objects that are expensive to rebuild."""


class Cache(object):
    """A table for caching objects.

    Every lookup or insertion stamps the entry with an access counter. When the
    table grows beyond cleanup_size the least recently used entries are dropped
    so the most recent cleanup_size entries remain.
    """

    def __init__(self, cleanup_size=2000):
        self.cleanup_size = cleanup_size
        self.clock = 0
        self.table = {}

    def _touch(self, key, value):
        self.table[key] = (value, self.clock)
        self.clock += 1

    def __len__(self):
        return len(self.table)

    def __setitem__(self, key, value):
        self._touch(key, value)
        if len(self.table) > self.cleanup_size:
            self.cleanup()

    def __getitem__(self, key):
        value, _ = self.table[key]
        self._touch(key, value)
        return value

    def __contains__(self, key):
        if key not in self.table:
            return False
        self._touch(key, self.table[key][0])
        return True

    def cleanup(self):
        """Keep only the cleanup_size most recently used entries and
        restart the access clock."""
        by_age = sorted(self.table.items(), key=lambda item: item[1][1], reverse=True)
        kept = by_age[:self.cleanup_size]
        self.clock = 0
        self.table = {}
        for key, (value, _) in reversed(kept):
            self._touch(key, value)
