# wallepak

`wallepak` reads and writes the DPC archive files used by WALL-E. It can:

- unpack an archive into a directory of object files with a JSON manifest,
- pack such a directory back into an archive,
- walk an archive, check every object header, and dump its layout as JSON,
- split a single object file into its class-object part and its data part.

Only the Python standard library is needed at runtime.

## Installation

```
pip install .
```

## Command line

Installing the package adds a `wallepak` command:

```
wallepak --help
wallepak extract level.dpc level_dir
wallepak create level_dir rebuilt.dpc
wallepak validate rebuilt.dpc rebuilt.json
wallepak split objects/123.Mesh_Z out/123.Mesh_Z
```

The command takes a command name (`extract`, `create`, `validate` or
`split`), an input path and an output path, followed by these flags:

- `-f`, `--force`: overwrite an existing output without asking.
- `-u`, `--unsafe`: accept archives and manifests whose version string is not
  one of the known versions.
- `-q`, `--quiet`: do not print progress messages.
- `-l`, `--lz`: ask for LZ handling of compressed objects (see "What it does
  not do").
- `-O`, `--optimization`: when creating an archive with a pool, remove
  duplicate pool reference records.
- `-r`, `--recursive`: accepted, but has no effect.

Backend arguments come after a `--`:

```
wallepak create level_dir rebuilt.dpc -- --no-pool
```

- `-n`, `--no-pool`: write the archive without a pool.
- `-p`, `--unoptimized-pool`: keep the pool reference records as they are in
  the manifest, even with `-O`.
- `-s`, `--sound-sample-rate` and `-T`, `--effective-version-string`: accepted
  and stored on the backend, but not used by any operation.

When an output path already exists and `-f` was not given, the command asks
what to do. Answer `0` or `Exit` to stop, `1` or `Skip this file` to skip, or
`2` or `Overwrite this file` to overwrite. An empty answer means `Exit`.

The command exits with status 0 on success. On a format or file error it
prints `error: ...` to standard error and exits with status 1.

## Extracted layout

Extracting an archive produces:

- `manifest.json`: the header fields that are needed to rebuild the archive,
  and the list of blocks. Each block entry gives the CRC32 of each object and
  whether it is compressed. When the archive has a pool, the manifest also
  holds the pool's object entries and reference records. For the two known
  versions (`v1.325.50.07` and `v1.220.50.07`), the version numbers and block
  type are implied by the version string and are not stored.
- `objects/`: one file per distinct object, named `<crc32>.<ClassName>`.
  Unknown classes use their class CRC32 in decimal. If a file named
  `<crc32>_<label>.<ClassName>` already exists there, it is reused, so you can
  give objects readable names. More than one such file for the same CRC32 is
  an error.
- `references.txt`: written empty.

Objects that live in the pool are written back into their files with their
pool data and header sizes.

To create an archive, `wallepak` reads this layout back. Files in `objects/`
whose name does not start with a decimal CRC32 are ignored. Two files for the
same CRC32 are an error. Blocks are written in manifest order, and each block
is padded with zeros to a 2048-byte boundary. Pooled objects keep only their
class object inside the blocks. Their data follows the pool manifest, with
each object padded with `0xFF` to a sector boundary. If the manifest's
incredibuilder string is empty, the padding and file-size header fields are
written as `0xFFFFFFFF`.

## Library use

```python
from wallepak.backend import WalleDpc
from wallepak.options import Options

dpc = WalleDpc(Options(is_force=True), ["--no-pool"])
manifest = dpc.extract("level.dpc", "level_dir")
header = dpc.create("level_dir", "rebuilt.dpc")
layout = dpc.validate("rebuilt.dpc", "rebuilt.json")
header_path, data_path = dpc.split_object("objects/123.Mesh_Z", "out/123.Mesh_Z")
```

The same operations are available as plain functions:

- `wallepak.extract.extract(input_path, output_path, options)` returns the
  `Manifest`, or `None` if the output was skipped.
  `wallepak.extract.resolve_object_path` gives the file name used for an
  object.
- `wallepak.create.create(input_path, output_path, options, no_pool,
  unoptimized_pool)` returns the `PrimaryHeader` it wrote.
  `wallepak.create.build_object_index` maps CRC32s to object files.
- `wallepak.validate.parse_dpc(data)` returns the layout as a dictionary.
  `wallepak.validate.validate` also writes that layout to a file.
- `wallepak.objects.split_object(input_path, output_path)` writes
  `<output>.header` and `<output>.data`. The output path must have an
  extension.

The lower-level pieces can also be used on their own:

- `wallepak.structures` holds the binary records (`ObjectHeader`,
  `BlockDescription`, `ReferenceRecord`, `PoolManifestHeader`, `PoolManifest`,
  `PrimaryHeader`) and the 2048-byte padding helpers
  `calculate_padded_size` and `calculate_padding_size`.
- `wallepak.manifest` holds the JSON manifest model. `Manifest.to_json` and
  `Manifest.from_json` read and write it.
- `wallepak.classes` maps class CRC32 values to class names and back
  (`class_name_for`, `class_crc32_for`). `version_info` gives the version
  numbers for a known version string.
- `wallepak.options.Options` holds the flags. Its `chooser` callable supplies
  the answer to the overwrite question; it defaults to `input`.

Format errors raise `wallepak.structures.DpcError`. Choosing "Exit" at the
overwrite question raises `wallepak.options.OperationAborted`, a subclass of
`DpcError`.

## What it does not do

- There is no LZ compression or decompression. Extracting with `-l` stops
  with an error as soon as it meets a compressed object. Creating with `-l`
  stops with an error for any object that the manifest marks as compressed
  but that is stored uncompressed. Without `-l`, objects are copied exactly
  as stored: compressed objects stay compressed, and uncompressed objects
  stay uncompressed.
- There are no separate commands to compress or decompress a single object.
- Object contents are not interpreted. There is no unpacking of individual
  class formats such as meshes, bitmaps or sounds, so `-r` does nothing and
  `references.txt` is always empty.