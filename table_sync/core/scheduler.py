"""
表拉取顺序计算
"""
from typing import Dict, Hashable, List, Sequence, TypeVar


T = TypeVar('T', bound=Hashable)


def _unique(ids: Sequence[T]) -> List[T]:
    seen = set()
    result = []
    for item in ids:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def sort_table_ids(table_ids: Sequence[T], parallel_table_ids: Sequence[T],
                   table_id_pages: Dict[T, int]) -> List[T]:
    """
    计算各表分页的拉取顺序

    按 table_ids 的顺序遍历：普通表连续输出全部页数；并行表只输出一次（第一页）。
    当所有并行表都已输出过一次后，立即按 parallel_table_ids 的顺序轮流输出
    并行表剩余的页，直到全部输出完，然后继续遍历剩下的表。

    例如 table_ids=[A, B, C]，页数 {A: 3, B: 2, C: 4}，并行表 [B, C]：
    A, A, A, B, C, B, C, C, C

    Args:
        table_ids: 所有要拉取的表，按优先级排列
        parallel_table_ids: 需要交替拉取的表，不在 table_ids 中的会被忽略
        table_id_pages: 每个表需要拉取的页数，缺失视为 0

    Returns:
        表 ID 序列，每个表出现的次数等于它的页数
    """
    table_ids = _unique(table_ids)
    members = set(table_ids)
    parallel_ids = [tid for tid in _unique(parallel_table_ids) if tid in members]

    def pages_of(tid: T) -> int:
        return max(table_id_pages.get(tid, 0), 0)

    # 并行表的第一页在遍历中输出，其余页留到交替阶段
    remaining = {tid: max(pages_of(tid) - 1, 0) for tid in parallel_ids}
    # 0 页的并行表视为已经开始
    not_started = {tid for tid in parallel_ids if pages_of(tid) > 0}

    sorted_ids: List[T] = []
    interleaved = False

    for tid in table_ids:
        pages = pages_of(tid)
        if pages > 0:
            if tid in remaining:
                sorted_ids.append(tid)
                not_started.discard(tid)
            else:
                sorted_ids.extend([tid] * pages)

        if not interleaved and not not_started:
            interleaved = True
            sorted_ids.extend(_round_robin(parallel_ids, remaining))

    return sorted_ids


def _round_robin(parallel_ids: List[T], remaining: Dict[T, int]) -> List[T]:
    """轮流输出并行表的剩余页，页数用完的表退出轮转"""
    result: List[T] = []
    left = dict(remaining)
    while any(count > 0 for count in left.values()):
        for tid in parallel_ids:
            if left[tid] > 0:
                result.append(tid)
                left[tid] -= 1
    return result
