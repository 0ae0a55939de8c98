import pathlib as pl

FileType = str | pl.Path
CmdLine = list[str] | tuple[str, ...]
