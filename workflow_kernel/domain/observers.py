"""
Transition observers.

Three kinds, registered once at startup and invoked in registration
order by the execution engine:

* ``PreTransitionObserver`` -- may veto by returning False.
* ``CommentMutator`` -- may rewrite the comment of an immediate
  transition just before it is recorded.
* ``PostTransitionObserver`` -- notified after the outcome is final;
  cannot change it.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from workflow_kernel.domain.transition import Transition


@runtime_checkable
class PreTransitionObserver(Protocol):
    def pre_transition(self, transition: Transition, actor_id: str) -> bool:
        ...


@runtime_checkable
class CommentMutator(Protocol):
    def alter_comment(self, comment: str, transition: Transition) -> str:
        ...


@runtime_checkable
class PostTransitionObserver(Protocol):
    def post_transition(self, transition: Transition, actor_id: str) -> None:
        ...


class ObserverRegistry:
    """Ordered observer lists injected into the execution engine."""

    def __init__(self) -> None:
        self._pre: list[PreTransitionObserver] = []
        self._comment: list[CommentMutator] = []
        self._post: list[PostTransitionObserver] = []

    def add_pre(self, observer: PreTransitionObserver) -> None:
        self._pre.append(observer)

    def add_comment_mutator(self, mutator: CommentMutator) -> None:
        self._comment.append(mutator)

    def add_post(self, observer: PostTransitionObserver) -> None:
        self._post.append(observer)

    @property
    def pre(self) -> tuple[PreTransitionObserver, ...]:
        return tuple(self._pre)

    @property
    def comment_mutators(self) -> tuple[CommentMutator, ...]:
        return tuple(self._comment)

    @property
    def post(self) -> tuple[PostTransitionObserver, ...]:
        return tuple(self._post)

    def first_veto(
        self, transition: Transition, actor_id: str,
    ) -> PreTransitionObserver | None:
        """Return the first observer that refuses, or None when all allow.

        Every observer is asked, even after a refusal.
        """
        vetoing = None
        for observer in self._pre:
            if observer.pre_transition(transition, actor_id) is False and vetoing is None:
                vetoing = observer
        return vetoing

    def apply_comment_mutators(self, transition: Transition) -> str:
        comment = transition.comment
        for mutator in self._comment:
            comment = mutator.alter_comment(comment, transition)
        return comment
