"""optinfer-bench 設定ファイル.

`optinfer-bench --config configs/bench_config.py` で読み込む.
コマンドライン引数で指定した値がこのファイルより優先される.
"""

# モデル設定
model_path = "models/classifier.pt"  # TorchScript または torch.save 形式のモデル
input_shape = [3, 32, 32]  # 1サンプルの入力形状 (バッチ軸を除く)
labels = ["cat", "dog", "bird", "fish"]  # クラスラベル
top_k = 3  # 上位何クラスを返すか

# 計測設定
batch_sizes = [1, 8, 16, 32]  # 計測するバッチサイズ
iterations = 20  # 計測回数
warmup_iterations = 3  # ウォームアップ回数

# 実行設定
use_gpu = True  # CUDAが無ければCPUで実行
quantization_bits = None  # 8 / 16 / 32. None なら量子化しない
cache_enabled = False  # 予測キャッシュを使うか
cache_size = 100  # キャッシュの最大件数
