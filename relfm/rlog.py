# encoding: utf-8
# Author: Kyohei Atarashi
# License: MIT


class RLog(object):
    """Tab separated table of per-iteration values, readable with R's
    ``read.table(header=TRUE)``.

    The columns are the names logged before the first :meth:`new_line`;
    logging another name afterwards is an error.
    """

    def __init__(self, stream, sep="\t"):
        self.stream = stream
        self.sep = sep
        self.header = None
        self._row = {}

    @classmethod
    def open(cls, path):
        return cls(open(path, "w"))

    def log(self, name, value):
        if self.header is not None and name not in self.header:
            raise ValueError(f"Column {name} is not in the log header.")
        self._row[name] = value

    def new_line(self):
        if self.header is None:
            self.header = list(self._row)
            self.stream.write(self.sep.join(self.header) + "\n")
        line = self.sep.join(str(self._row.get(name, "NA")) for name in self.header)
        self.stream.write(line + "\n")
        self.stream.flush()
        self._row = {}

    def close(self):
        self.stream.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
