from typing import List, Sequence, TypeVar

from .errors import InvalidConfigurationError

T = TypeVar("T")


def split_work(items: Sequence[T], partition_count: int) -> List[List[T]]:
    """
    Split items into partition_count contiguous, near-equal partitions.

    The first len(items) % partition_count partitions receive one extra item.
    Partitions keep the input order, so concatenating them reproduces the
    input. Some partitions are empty when there are fewer items than
    partitions.

    Raises:
        InvalidConfigurationError: If partition_count < 1
    """
    if partition_count < 1:
        raise InvalidConfigurationError(
            f"Cannot split work between {partition_count} partitions"
        )

    each, extra = divmod(len(items), partition_count)
    partitions = []
    for i in range(partition_count):
        start = i * each + min(i, extra)
        end = start + each + (1 if i < extra else 0)
        partitions.append(list(items[start:end]))
    return partitions
