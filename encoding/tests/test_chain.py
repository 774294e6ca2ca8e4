from pathlib import Path

from django.test import SimpleTestCase, TestCase

from encoding.chain import Step, TaskChain
from encoding.models import Encoder, EncodingTask


class TaskChainTests(SimpleTestCase):

    def setUp(self):
        self.a = Step(position=0, output_file_suffix="-360p.mp4", command="-s 640x360")
        self.b = Step(position=1, output_file_suffix="-720p.mp4", command="-s 1280x720", name="hd")
        self.chain = TaskChain(encoder_name="web", steps=(self.a, self.b))

    def test_iterates_in_order(self):
        self.assertEqual(list(self.chain), [self.a, self.b])
        self.assertEqual(len(self.chain), 2)
        self.assertEqual(self.chain.first(), self.a)

    def test_next_after(self):
        self.assertEqual(self.chain.next_after(self.a), self.b)
        self.assertIsNone(self.chain.next_after(self.b))

    def test_empty_chain(self):
        chain = TaskChain(encoder_name="nothing")
        self.assertIsNone(chain.first())
        self.assertEqual(list(chain), [])

    def test_output_path_uses_source_stem(self):
        out = TaskChain.output_path_for("/media/in/in.mp4", self.b)
        self.assertEqual(out, Path("/media/in/in-720p.mp4"))

    def test_label_falls_back_to_suffix(self):
        self.assertEqual(self.a.label, "-360p.mp4")
        self.assertEqual(self.b.label, "hd")


class EncoderChainTests(TestCase):

    def test_tasks_are_appended_in_order(self):
        encoder = Encoder.objects.create(name="web")
        first = EncodingTask.objects.create(encoder=encoder, output_file_suffix="-a", command="-an")
        second = EncodingTask.objects.create(encoder=encoder, output_file_suffix="-b", command="-an")
        self.assertEqual((first.position, second.position), (0, 1))

        other = Encoder.objects.create(name="other")
        self.assertEqual(EncodingTask.objects.create(encoder=other, output_file_suffix="-c", command="").position, 0)

    def test_task_chain_is_a_snapshot(self):
        encoder = Encoder.objects.create(name="web")
        EncodingTask.objects.create(encoder=encoder, output_file_suffix="-360p", command="-s 640x360")
        EncodingTask.objects.create(encoder=encoder, output_file_suffix="-720p", command="-s 1280x720")

        chain = encoder.task_chain()
        EncodingTask.objects.create(encoder=encoder, output_file_suffix="-1080p", command="-s 1920x1080")
        encoder.encoding_tasks.filter(output_file_suffix="-360p").delete()

        self.assertEqual(chain.encoder_name, "web")
        self.assertEqual([s.output_file_suffix for s in chain], ["-360p", "-720p"])
